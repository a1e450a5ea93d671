# -------------------------
# Status server: /health, /ready, /metrics, /metrics/prom
# -------------------------
import json
import threading
import time
from typing import Callable, Optional

from flask import Flask, Response

from .logs import log
from .processor import ProcessorState


def format_uptime(seconds: int) -> str:
    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m"
    else:
        return f"{minutes}m {seconds}s"


def create_app(state: ProcessorState, threshold_usd: float, tracked_type: str,
               is_running: Callable[[], bool] = lambda: True) -> Flask:
    app = Flask(__name__)
    app.config["JSONIFY_PRETTYPRINT_REGULAR"] = False

    @app.get("/")
    def status_dashboard():
        snap = state.snapshot()
        t = snap["totals"]
        uptime = int(max(0, time.time() - snap["start_ts"]))
        status_text = "Operational" if is_running() else "Stopped"
        rows = "".join(
            f"<tr><td>{k.replace('_', ' ').title()}</td><td>{v}</td></tr>" for k, v in t.items()
        )
        html = f"""<!DOCTYPE html>
<html lang="en"><head><meta charset="UTF-8"><title>Pinnacle Sales Bot - Status</title></head>
<body>
<h1>Pinnacle Sales Bot</h1>
<p>● {status_text} · uptime {format_uptime(uptime)}</p>
<p>Tracking {tracked_type} at ≥ ${threshold_usd:g}</p>
<table>{rows}</table>
<p><a href="/health">/health</a> · <a href="/ready">/ready</a> · <a href="/metrics">/metrics</a> · <a href="/metrics/prom">/metrics/prom</a></p>
</body></html>"""
        return app.response_class(response=html, status=200, mimetype="text/html")

    @app.get("/health")
    def health():
        return "ok", 200

    @app.get("/ready")
    def ready():
        return ("ok", 200) if is_running() else ("stopped", 503)

    @app.get("/metrics")
    def metrics_json():
        snap = state.snapshot()
        body = {
            "ok": True,
            "uptime_seconds": int(max(0, time.time() - snap["start_ts"])),
            "threshold_usd": threshold_usd,
            "tracked_type": tracked_type,
            "posted_tx_ids": snap["posted_tx_ids"],
            "metrics": snap["totals"],
            "window": snap["window"],
        }
        return app.response_class(
            response=json.dumps(body, separators=(",", ":")),
            status=200,
            mimetype="application/json"
        )

    @app.get("/metrics/prom")
    def metrics_prom():
        snap = state.snapshot()
        uptime = int(max(0, time.time() - snap["start_ts"]))
        lines = [f"bot_uptime_seconds {uptime}", f"bot_posted_tx_ids {snap['posted_tx_ids']}"]
        lines += [f"bot_{k}_total {v}" for k, v in sorted(snap["totals"].items())]
        return Response("\n".join(lines) + "\n", status=200, mimetype="text/plain; version=0.0.4")

    return app


def serve_in_background(app: Flask, port: int) -> Optional[threading.Thread]:
    if not port:
        return None
    t = threading.Thread(
        target=lambda: app.run(host="0.0.0.0", port=port, debug=False, use_reloader=False),
        name="status-server", daemon=True,
    )
    t.start()
    log(f"Status server on 0.0.0.0:{port}", "INFO")
    return t
