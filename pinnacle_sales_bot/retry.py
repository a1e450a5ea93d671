import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple, Type, TypeVar

from .logs import log

T = TypeVar("T")


class RetriesExhausted(Exception):
    """Every attempt returned a retryable result or raised a retryable error."""

    def __init__(self, msg: str, attempts: int, last_result=None, last_error: Optional[BaseException] = None):
        super().__init__(msg)
        self.attempts = attempts
        self.last_result = last_result
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """Bounded retry with an explicit backoff schedule; sleeps only between attempts."""
    max_attempts: int = 3
    backoff: Sequence[float] = (2.0, 4.0, 8.0)
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def exponential(cls, max_attempts: int, base: float, **kw) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, backoff=tuple(base * (2 ** i) for i in range(max(1, max_attempts))), **kw)

    def delay(self, attempt: int) -> float:
        """Delay after the given 1-based attempt; the last schedule entry repeats."""
        if not self.backoff:
            return 0.0
        base = self.backoff[min(attempt - 1, len(self.backoff) - 1)]
        return base + (random.uniform(0, self.jitter) if self.jitter else 0.0)

    def run(self, op: Callable[[], T], *, retry_if: Callable[[T], bool] = lambda r: False,
            retry_on: Tuple[Type[BaseException], ...] = (), what: str = "operation") -> T:
        last_result = None
        last_error: Optional[BaseException] = None
        attempts = max(1, self.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                result = op()
            except retry_on as e:
                last_error, last_result = e, None
                log(f"{what}: attempt {attempt}/{attempts} failed: {e}", "WARN")
            else:
                if not retry_if(result):
                    return result
                last_error, last_result = None, result
                log(f"{what}: attempt {attempt}/{attempts} returned nothing yet", "INFO")
            if attempt < attempts:
                d = self.delay(attempt)
                log(f"{what}: retrying in {d:.2f}s", "DEBUG")
                self.sleep(d)
        raise RetriesExhausted(f"{what} failed after {attempts} attempts", attempts, last_result, last_error)
