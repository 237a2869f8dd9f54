"""
Sliding-window rate limiter for quota-limited providers.

Alpha Vantage's free tier allows 5 requests per minute, so the default cap
is 4 to keep a request in reserve. The limiter is owned by whoever makes the
calls (normally the MarketDataGateway) and is not shared between instances.

Not thread-safe: it is meant to be driven from a single event loop. Guard it
with a lock if you ever call it from several threads.

Example usage:
    limiter = RateLimiter(max_calls=4, time_window=60)
    if limiter.can_make_call():
        limiter.record_call()
        ...
    else:
        wait = limiter.get_wait_time()
"""

import logging
import time
from typing import Callable, List

logger = logging.getLogger(__name__)

class RateLimiter:
    def __init__(
        self,
        max_calls: int = 4,
        time_window: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_calls <= 0:
            raise ValueError("max_calls must be positive")
        if time_window <= 0:
            raise ValueError("time_window must be positive")
        self.max_calls = max_calls
        self.time_window = time_window
        self._clock = clock
        self._calls: List[float] = []

    def _recent_calls(self, now: float) -> List[float]:
        return [t for t in self._calls if now - t < self.time_window]

    def can_make_call(self) -> bool:
        """True when fewer than max_calls calls fall inside the current window"""
        return len(self._recent_calls(self._clock())) < self.max_calls

    def record_call(self) -> None:
        now = self._clock()
        self._calls = self._recent_calls(now)
        self._calls.append(now)
        logger.debug(f"Rate limiter: {len(self._calls)}/{self.max_calls} calls in window")

    def get_wait_time(self) -> float:
        """
        Seconds until the oldest in-window call leaves the window.

        Returns 0 when no calls have been recorded.
        """
        now = self._clock()
        recent = self._recent_calls(now)
        if not recent:
            return 0.0
        oldest = min(recent)
        return max(0.0, self.time_window - (now - oldest))

    def get_status(self) -> dict:
        now = self._clock()
        return {
            "calls_in_window": len(self._recent_calls(now)),
            "max_calls": self.max_calls,
            "time_window": self.time_window,
            "can_make_call": self.can_make_call(),
            "wait_time": self.get_wait_time(),
        }
