"""Process-wide rate limiter for the business registry.

The registry allows a fixed number of calls per rolling window and asks for
a minimum gap between consecutive calls. Every caller in the process goes
through one shared limiter so the budget is enforced globally.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable

from bizcontacts.config import get_settings

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rolling-window limiter with a minimum inter-call delay.

    The clock and sleep functions are injectable so tests can drive the
    limiter with a fake clock instead of waiting on wall time.
    """

    def __init__(
        self,
        calls_per_window: int,
        window_seconds: float,
        min_delay_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize limiter.

        Args:
            calls_per_window: Max calls allowed inside any window
            window_seconds: Window length in seconds
            min_delay_seconds: Minimum gap between two calls
            clock: Monotonic time source
            sleep: Blocking sleep used while waiting
        """
        if calls_per_window < 1:
            raise ValueError("calls_per_window must be >= 1")
        self.calls_per_window = calls_per_window
        self.window_seconds = window_seconds
        self.min_delay_seconds = min_delay_seconds
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._last_call: float | None = None
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    def _wait_time(self, now: float) -> float:
        wait = 0.0
        if self._last_call is not None:
            wait = max(wait, self.min_delay_seconds - (now - self._last_call))
        if len(self._calls) >= self.calls_per_window:
            wait = max(wait, self.window_seconds - (now - self._calls[0]))
        return wait

    def acquire(self) -> float:
        """Block until a call is allowed, then record it. Returns seconds waited."""
        waited = 0.0
        with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                wait = self._wait_time(now)
                if wait <= 0:
                    break
                logger.debug(f"Rate limit: waiting {wait:.2f}s ({len(self._calls)}/{self.calls_per_window} in window)")
                self._sleep(wait)
                waited += wait

            now = self._clock()
            self._calls.append(now)
            self._last_call = now
        return waited

    def reset(self) -> None:
        """Drop the window state. Used after the server answered 429."""
        with self._lock:
            self._calls.clear()
            self._last_call = self._clock()
        logger.info("Rate limiter window reset")

    @property
    def calls_in_window(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._calls)


_limiter: RateLimiter | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Shared registry limiter for this process."""
    global _limiter
    with _limiter_lock:
        if _limiter is None:
            settings = get_settings()
            _limiter = RateLimiter(
                calls_per_window=settings.registry_calls_per_window,
                window_seconds=settings.registry_window_seconds,
                min_delay_seconds=settings.registry_min_delay_seconds,
            )
        return _limiter
