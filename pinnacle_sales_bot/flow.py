# Flow Access REST client + retry-aware transaction fetch

import base64
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter, Retry

from .cadence import DecodeError, decode_result, encode_argument
from .logs import log
from .models import RawEvent
from .retry import RetriesExhausted, RetryPolicy

DEFAULT_REST_ENDPOINT = "https://rest-mainnet.onflow.org"
MAX_EVENT_RANGE = 250  # blocks per /v1/events request

# Requests tuning
HTTP_TIMEOUT = (5, 30)  # connect, read
RETRY_POLICY = Retry(
    total=3,
    backoff_factor=0.5,
    status_forcelist=(429, 500, 502, 503, 504),
    allowed_methods=("GET", "POST"),
    raise_on_status=False,
)


class FetchError(Exception):
    """Transport/HTTP failure talking to the Flow access node."""
    pass


class TransactionNotIndexed(FetchError):
    """Transaction results still had no events after every retry."""
    pass


class ScriptError(FetchError):
    """Cadence script execution failed or returned an undecodable value."""
    pass


def make_session(user_agent: str = "pinnacle-sales-bot/1.0") -> requests.Session:
    s = requests.Session()
    s.headers.update({"User-Agent": user_agent})
    s.mount("https://", HTTPAdapter(max_retries=RETRY_POLICY))
    s.mount("http://",  HTTPAdapter(max_retries=RETRY_POLICY))
    return s


class FlowClient:
    def __init__(self, endpoint: str = DEFAULT_REST_ENDPOINT, session: Optional[requests.Session] = None):
        self.endpoint = (endpoint or DEFAULT_REST_ENDPOINT).rstrip("/")
        self.s = session or make_session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.endpoint}{path}"
        try:
            r = self.s.get(url, params=params, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise FetchError(f"GET {path} failed: {e}") from e
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise FetchError(f"GET {path} failed [{r.status_code}]: {r.text[:200]}")
        try:
            return r.json()
        except ValueError as e:
            raise FetchError(f"GET {path} returned non-JSON body") from e

    def latest_sealed_height(self) -> int:
        blocks = self._get("/v1/blocks", {"height": "sealed"})
        try:
            return int(blocks[0]["header"]["height"])
        except (TypeError, KeyError, IndexError, ValueError) as e:
            raise FetchError(f"unexpected /v1/blocks response: {blocks!r:.200}") from e

    def get_events(self, event_type: str, start: int, end: int) -> List[RawEvent]:
        """Events of one type in [start, end], split into MAX_EVENT_RANGE windows, in block order."""
        out: List[RawEvent] = []
        lo = start
        while lo <= end:
            hi = min(end, lo + MAX_EVENT_RANGE - 1)
            blocks = self._get("/v1/events", {"type": event_type, "start_height": lo, "end_height": hi}) or []
            for b in blocks:
                try: height = int(b.get("block_height"))
                except (TypeError, ValueError): height = None
                for ev in (b.get("events") or []):
                    out.append(RawEvent.from_rest(ev, block_height=height))
            lo = hi + 1
        log(f"events {event_type} [{start}..{end}]: {len(out)}", "DEBUG")
        return out

    def transaction_results(self, tx_id: str) -> Optional[Dict[str, Any]]:
        return self._get(f"/v1/transaction_results/{tx_id}")

    def execute_script(self, cadence: str, arguments: Sequence[str] = ()) -> Any:
        """Run a read-only Cadence script at the latest sealed block; arguments come from encode_argument."""
        body = {
            "script": base64.b64encode(cadence.encode("utf-8")).decode("ascii"),
            "arguments": list(arguments),
        }
        url = f"{self.endpoint}/v1/scripts"
        try:
            r = self.s.post(url, params={"block_height": "sealed"}, json=body, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise ScriptError(f"script request failed: {e}") from e
        if r.status_code != 200:
            raise ScriptError(f"script failed [{r.status_code}]: {r.text[:300]}")
        try:
            return decode_result(r.json())
        except (ValueError, DecodeError) as e:
            raise ScriptError(f"script result not decodable: {e}") from e


def query_script(client: FlowClient, policy: RetryPolicy, cadence: str, args: Sequence[str], what: str) -> Any:
    try:
        return policy.run(lambda: client.execute_script(cadence, args), retry_on=(ScriptError,), what=what)
    except RetriesExhausted as e:
        raise ScriptError(str(e)) from e.last_error


# -------------------------
# Transaction fetch with indexing-lag retry
# -------------------------
class TransactionFetcher:
    """Transaction events, retried while the access node has not indexed them yet."""

    def __init__(self, client: FlowClient, policy: Optional[RetryPolicy] = None):
        self.client = client
        self.policy = policy or RetryPolicy(max_attempts=3, backoff=(2.0, 4.0, 8.0))

    def _events_of(self, results: Optional[Dict[str, Any]]) -> List[RawEvent]:
        if not results:
            return []
        return [RawEvent.from_rest(ev) for ev in (results.get("events") or [])]

    def fetch(self, tx_id: str) -> List[RawEvent]:
        try:
            # FetchError (transport) is not in retry_on: it propagates on the first failure
            return self.policy.run(
                lambda: self._events_of(self.client.transaction_results(tx_id)),
                retry_if=lambda evs: len(evs) == 0,
                what=f"tx results {tx_id[:10]}…",
            )
        except RetriesExhausted as e:
            raise TransactionNotIndexed(f"no events for {tx_id} after {e.attempts} attempts") from e
