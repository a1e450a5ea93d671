import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

SECRET_NAMES = (
    "TWITTER_API_KEY",
    "TWITTER_API_SECRET",
    "PINNACLEPINBOT_ACCESS_TOKEN",
    "PINNACLEPINBOT_ACCESS_SECRET",
)

DEBUG = os.environ.get("DEBUG_LOG_ALL_EVENTS", "false").strip().lower() in ("1", "true", "yes", "on")


def log(msg: str, lvl="INFO"):
    if lvl == "DEBUG" and not DEBUG:
        return
    if isinstance(msg, str):
        for k in SECRET_NAMES:
            if k in msg: msg = "[redacted]"
    print(f"[{time.strftime('%Y-%m-%dT%H:%M:%S')}] [{lvl}] {msg}", flush=True)


def set_debug(enabled: bool) -> None:
    global DEBUG
    DEBUG = bool(enabled)


# -------------------------
# Audit files (JSON lines)
# -------------------------
class AuditLog:
    """Append-only JSON-lines files explaining why a sale was or was not posted."""

    SKIPPED = "skipped_events.log"
    SUCCESS = "successful_tweets.log"
    FAILED = "failed_tweets.log"

    def __init__(self, out_dir: Path):
        self.dir = Path(out_dir) / "logs"
        self.dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _append(self, name: str, entry: Dict[str, Any]) -> None:
        entry = {"timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"), **entry}
        line = json.dumps(entry, default=str, separators=(",", ":"))
        try:
            with self._lock, open(self.dir / name, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            log(f"audit write failed ({name}): {e}", "WARN")

    def skipped(self, kind: str, reason: str, tx_id: str, event_type: str,
                data: Optional[Dict[str, Any]] = None) -> None:
        self._append(self.SKIPPED, {
            "kind": kind,
            "reason": reason,
            "event": {"transactionId": tx_id, "type": event_type, "data": data or {}},
        })

    def tweet(self, success: bool, data: Dict[str, Any]) -> None:
        self._append(self.SUCCESS if success else self.FAILED, {"success": success, **data})
