# Block polling loop (production) and single-block replay (test mode)

import signal
import threading
from typing import Callable, List, Optional, Sequence

from .flow import FetchError, FlowClient
from .logs import log
from .models import RawEvent
from .processor import Outcome, SaleProcessor


class Monitor:
    """Polls sealed blocks and feeds ListingCompleted events to the processor one at a time."""

    def __init__(self, client: FlowClient, processor: SaleProcessor, event_types: Sequence[str],
                 poll_interval: float = 2.0, sleep: Optional[Callable[[float], object]] = None):
        self.client = client
        self.processor = processor
        self.event_types = list(event_types)
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.stop = threading.Event()
        self.last_height = 0

    def install_signal_handlers(self) -> None:
        def _stop(signum, _frame):
            log(f"signal {signum}: stopping intake after the current event", "INFO")
            self.stop.set()
        signal.signal(signal.SIGINT, _stop)
        signal.signal(signal.SIGTERM, _stop)

    def events_between(self, start: int, end: int) -> List[RawEvent]:
        evs: List[RawEvent] = []
        for et in self.event_types:
            evs.extend(self.client.get_events(et, start, end))
        evs.sort(key=lambda e: (e.block_height or 0, e.transaction_index or 0, e.event_index or 0))
        return evs

    def handle_all(self, events: Sequence[RawEvent]) -> List[Outcome]:
        out = []
        for ev in events:
            if self.stop.is_set():
                break
            out.append(self.processor.handle(ev))
        return out

    def poll_once(self) -> List[Outcome]:
        height = self.client.latest_sealed_height()
        if self.last_height == 0:
            self.last_height = height
            log(f"Starting block monitoring at height {height}", "INFO")
            return []
        if height <= self.last_height:
            return []
        start = self.last_height + 1
        log(f"Block {self.last_height} → {height} ({height - self.last_height} new blocks)", "DEBUG")
        outcomes = self.handle_all(self.events_between(start, height))
        if not self.stop.is_set():
            self.last_height = height
        return outcomes

    def run(self, start_height: Optional[int] = None) -> None:
        if start_height:
            self.last_height = start_height - 1
        log(f"Watching {', '.join(self.event_types)}", "INFO")
        while not self.stop.is_set():
            try:
                self.poll_once()
            except FetchError as e:
                log(f"poll failed: {e}", "WARN")
            # stop.wait returns early on a signal
            (self.sleep or self.stop.wait)(self.poll_interval)
        log("monitor stopped", "INFO")

    def replay_block(self, height: int) -> List[Outcome]:
        log(f"=== Replaying block {height} ===", "INFO")
        events = self.events_between(height, height)
        if not events:
            log("No events found in this block.", "INFO")
            return []
        log(f"Found {len(events)} events in block {height}", "INFO")
        return self.handle_all(events)
