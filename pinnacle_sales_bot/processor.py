# Top-level per-event handler: decode -> gate -> fetch tx -> correlate -> metadata -> post
# Every failure is recovered here; one bad event never stops the stream.

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Protocol, Set, Union

from .addresses import unwrap_address
from .cadence import DecodeError, decode_event
from .correlate import resolve_transfers
from .flow import FetchError, TransactionFetcher
from .gate import REASON_BELOW_THRESHOLD, GateConfig, Rejected, SaleEventGate
from .logs import AuditLog, log
from .metadata import PinDetails
from .models import DecodedEvent, RawEvent, SaleRecord
from .tweets import display_price, fallback_text, sale_text
from .twitter import RateLimitError

POSTED = "posted"
DRY_RUN = "dry_run"
REJECTED = "rejected"
SKIPPED = "skipped"
DUPLICATE = "duplicate"
FAILED = "failed"

STATUS_EVERY_SECS = 10.0


class Notifier(Protocol):
    def post(self, text: str, image_url: Optional[str] = None) -> bool: ...


class MetadataSource(Protocol):
    def details(self, owner: str, nft_id: str) -> Optional[PinDetails]: ...


@dataclass(frozen=True)
class Outcome:
    kind: str
    reason: str = ""
    sale: Optional[SaleRecord] = None
    text: Optional[str] = None


# -------------------------
# Process state (single writer: the event loop; the status server only reads)
# -------------------------
@dataclass
class ProcessorState:
    start_ts: float = field(default_factory=time.time)
    posted_tx_ids: Set[str] = field(default_factory=set)
    totals: Dict[str, int] = field(default_factory=lambda: {
        "events": 0, "sales": 0, "below_threshold": 0, "rejected": 0,
        "skipped": 0, "posted": 0, "post_failures": 0, "duplicates": 0, "failed": 0,
    })
    window: Dict[str, int] = field(default_factory=lambda: {"events": 0, "sales": 0, "below_threshold": 0})
    last_status_ts: float = field(default_factory=time.time)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def inc(self, key: str, n: int = 1) -> None:
        with self.lock:
            self.totals[key] = self.totals.get(key, 0) + n
            if key in self.window:
                self.window[key] += n

    def already_posted(self, tx_id: str) -> bool:
        with self.lock:
            return tx_id in self.posted_tx_ids

    def mark_posted(self, tx_id: str) -> None:
        with self.lock:
            self.posted_tx_ids.add(tx_id)

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "start_ts": self.start_ts,
                "posted_tx_ids": len(self.posted_tx_ids),
                "totals": dict(self.totals),
                "window": dict(self.window),
            }

    def roll_window(self, now: float) -> Optional[Dict[str, int]]:
        """Window counters since the last report, reset, once every STATUS_EVERY_SECS."""
        with self.lock:
            if now - self.last_status_ts < STATUS_EVERY_SECS:
                return None
            w = dict(self.window)
            for k in self.window:
                self.window[k] = 0
            self.last_status_ts = now
            return w


class SaleProcessor:
    def __init__(self, gate: SaleEventGate, fetcher: TransactionFetcher, metadata: MetadataSource,
                 notifier: Optional[Notifier], cfg: GateConfig, audit: Optional[AuditLog] = None,
                 state: Optional[ProcessorState] = None, enable_tweets: bool = True):
        self.gate = gate
        self.fetcher = fetcher
        self.metadata = metadata
        self.notifier = notifier
        self.cfg = cfg
        self.audit = audit
        self.state = state or ProcessorState()
        self.enable_tweets = enable_tweets

    # ---- outcome helpers ----
    def _skip(self, ev: Union[RawEvent, DecodedEvent], reason: str, data: Optional[Dict[str, Any]] = None) -> Outcome:
        self.state.inc("skipped")
        log(f"skip {ev.type} tx {ev.transaction_id[:10]}…: {reason}", "WARN")
        if self.audit:
            self.audit.skipped(SKIPPED, reason, ev.transaction_id, ev.type, data)
        return Outcome(SKIPPED, reason)

    def _reject(self, d: DecodedEvent, r: Rejected) -> Outcome:
        self.state.inc("rejected")
        if r.reason == REASON_BELOW_THRESHOLD:
            self.state.inc("sales")
            self.state.inc("below_threshold")
            log(f"reject tx {d.transaction_id[:10]}…: price ${r.usd_price:0.2f} below ${self.cfg.threshold_usd:g} threshold", "INFO")
        else:
            log(f"reject tx {d.transaction_id[:10]}…: {r.reason}", "DEBUG")
        if self.audit:
            self.audit.skipped(REJECTED, r.reason, d.transaction_id, d.type, dict(d.fields))
        return Outcome(REJECTED, r.reason)

    # ---- main entry ----
    def handle(self, ev: Union[RawEvent, DecodedEvent]) -> Outcome:
        self.state.inc("events")
        try:
            return self._handle(ev)
        except Exception as e:
            self.state.inc("failed")
            log(f"Error in handle for tx {ev.transaction_id}: {e!r}", "ERROR")
            return Outcome(FAILED, str(e))
        finally:
            self.report_status()

    def _handle(self, ev: Union[RawEvent, DecodedEvent]) -> Outcome:
        tx_id = ev.transaction_id
        if self.state.already_posted(tx_id):
            self.state.inc("duplicates")
            log(f"skip duplicate tx {tx_id[:10]}…", "DEBUG")
            return Outcome(DUPLICATE, "already posted")

        try:
            d = decode_event(ev)
        except DecodeError as e:
            return self._skip(ev, f"decode failed: {e}")
        log(f"event {d.type} tx {tx_id[:10]}…: {dict(d.fields)}", "DEBUG")

        res = self.gate.accept(d, self.cfg)
        if isinstance(res, Rejected):
            return self._reject(d, res)
        sale = res.sale
        self.state.inc("sales")

        try:
            tx_events = self.fetcher.fetch(tx_id)
        except FetchError as e:
            return self._skip(d, f"tx results unavailable: {e}", dict(d.fields))

        t = resolve_transfers(tx_events, sale.token_id)
        seller = t.seller or self._fallback_seller(d)
        if not (seller or t.buyer):
            return self._skip(d, f"could not determine buyer/seller for NFT {sale.token_id}", dict(d.fields))
        sale = replace(sale, seller=seller, buyer=t.buyer)

        log(f"Found Pinnacle sale: {display_price(sale)} NFT #{sale.token_id} tx {tx_id[:10]}…", "INFO")
        query_addr = sale.buyer or sale.seller
        pin = self.metadata.details(query_addr, sale.token_id)
        if pin is None:
            text, image_url = fallback_text(sale), None
        else:
            text, image_url = sale_text(sale, pin), pin.image_url

        if self.cfg.dry_run or not self.enable_tweets or self.notifier is None:
            log(f"Would tweet:\n{text}" + (f"\nImage URL: {image_url}" if image_url else ""), "INFO")
            return Outcome(DRY_RUN, sale=sale, text=text)
        return self._post(sale, text, image_url, pin)

    def _fallback_seller(self, d: DecodedEvent) -> Optional[str]:
        return unwrap_address(d.get("storefrontAddress")) or unwrap_address(d.get("seller"))

    def _post(self, sale: SaleRecord, text: str, image_url: Optional[str], pin: Optional[PinDetails]) -> Outcome:
        record = {
            "nftId": sale.token_id,
            "transactionId": sale.transaction_id,
            "price": round(sale.usd_price, 2),
            "editionId": pin.edition_id if pin else None,
            "renderID": pin.render_id if pin else None,
            "imageUrl": image_url,
            "tweetText": text,
        }
        try:
            ok = self.notifier.post(text, image_url)
            err = None if ok else "post rejected by API"
        except RateLimitError as e:
            ok, err = False, f"rate limited: {e}"
        except Exception as e:
            ok, err = False, str(e)

        if self.audit:
            self.audit.tweet(ok, record if ok else {**record, "error": err})
        if not ok:
            self.state.inc("post_failures")
            log(f"Tweet failed: NFT #{sale.token_id} at ${sale.usd_price:0.2f} - {err}", "ERROR")
            return Outcome(FAILED, err or "", sale=sale, text=text)
        self.state.mark_posted(sale.transaction_id)
        self.state.inc("posted")
        log(f"posted NFT #{sale.token_id} at ${sale.usd_price:0.2f}", "INFO")
        return Outcome(POSTED, sale=sale, text=text)

    def report_status(self, now: Optional[float] = None) -> None:
        w = self.state.roll_window(time.time() if now is None else now)
        if w is None:
            return
        log(f"Stats: Events: {w['events']} | Sales: {w['sales']} "
            f"({w['below_threshold']} below ${self.cfg.threshold_usd:g})", "INFO")
