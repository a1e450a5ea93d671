# ================== Environment configuration ==================
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .logs import log
from .metadata import BUNDLED_CADENCE_DIR

SECRET_KEYS_REQUIRED = [
    "TWITTER_API_KEY",
    "TWITTER_API_SECRET",
    "PINNACLEPINBOT_ACCESS_TOKEN",
    "PINNACLEPINBOT_ACCESS_SECRET",
]

PINNACLE_NFT_TYPE = "A.edf9df96c92f4595.Pinnacle.NFT"
LISTING_COMPLETED_EVENT = "A.4eb8a10cb9f87357.NFTStorefrontV2.ListingCompleted"
LISTING_COMPLETED_EVENTS = (
    LISTING_COMPLETED_EVENT,
    "A.3cdbb3d569211ff3.NFTStorefrontV2.ListingCompleted",
)


def get_secret(name: str, optional: bool = False) -> Optional[str]:
    val = os.environ.get(name)
    if val is None and not optional:
        log(f"Required secret '{name}' is not set in environment variables.", "WARN")
    return val


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _csv(name: str, default: str) -> Tuple[str, ...]:
    return tuple(a.strip() for a in os.environ.get(name, default).split(",") if a.strip())


@dataclass(frozen=True)
class Settings:
    flow_rest_endpoint: str = "https://rest-mainnet.onflow.org"
    tracked_type: str = PINNACLE_NFT_TYPE
    listing_event_types: Tuple[str, ...] = LISTING_COMPLETED_EVENTS
    threshold_usd: float = 50.0
    poll_interval_secs: float = 2.0
    tx_fetch_attempts: int = 3
    tx_fetch_backoff_secs: float = 2.0
    price_ttl_secs: float = 60.0
    price_oracle: str = "coingecko"
    oracle_address: str = "0xe385412159992e11"
    cadence_dir: Path = BUNDLED_CADENCE_DIR
    out_dir: Path = Path("./out")
    debug_log_all_events: bool = False
    enable_tweets: bool = True
    port: int = 5000
    twitter_api_key: Optional[str] = None
    twitter_api_secret: Optional[str] = None
    access_token: Optional[str] = None
    access_secret: Optional[str] = None

    @classmethod
    def from_env(cls, require_secrets: bool = True) -> "Settings":
        return cls(
            flow_rest_endpoint=os.environ.get("FLOW_REST_ENDPOINT", cls.flow_rest_endpoint).rstrip("/"),
            tracked_type=os.environ.get("TRACKED_NFT_TYPE", PINNACLE_NFT_TYPE).strip(),
            listing_event_types=_csv("LISTING_EVENT_TYPES", ",".join(LISTING_COMPLETED_EVENTS)),
            threshold_usd=float(os.environ.get("PRICE_THRESHOLD_USD", "50")),
            poll_interval_secs=float(os.environ.get("POLL_INTERVAL_SECS", "2")),
            tx_fetch_attempts=int(os.environ.get("TX_FETCH_ATTEMPTS", "3")),
            tx_fetch_backoff_secs=float(os.environ.get("TX_FETCH_BACKOFF_SECS", "2")),
            price_ttl_secs=float(os.environ.get("PRICE_TTL_SECS", "60")),
            price_oracle=os.environ.get("PRICE_ORACLE", "coingecko").strip().lower(),
            oracle_address=os.environ.get("FLOW_ORACLE_ADDRESS", cls.oracle_address).strip(),
            cadence_dir=Path(os.environ.get("CADENCE_DIR", str(BUNDLED_CADENCE_DIR))).resolve(),
            out_dir=Path(os.environ.get("OUTPUT_DIR", "./out")).resolve(),
            debug_log_all_events=_flag("DEBUG_LOG_ALL_EVENTS", "false"),
            enable_tweets=_flag("ENABLE_TWEETS", "true"),
            port=int(os.environ.get("PORT", "5000")),
            twitter_api_key=get_secret("TWITTER_API_KEY", optional=not require_secrets),
            twitter_api_secret=get_secret("TWITTER_API_SECRET", optional=not require_secrets),
            access_token=get_secret("PINNACLEPINBOT_ACCESS_TOKEN", optional=not require_secrets),
            access_secret=get_secret("PINNACLEPINBOT_ACCESS_SECRET", optional=not require_secrets),
        )

    def missing_secrets(self):
        vals = (self.twitter_api_key, self.twitter_api_secret, self.access_token, self.access_secret)
        return [k for k, v in zip(SECRET_KEYS_REQUIRED, vals) if not v]
