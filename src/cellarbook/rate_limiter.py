"""
Local request throttle for the AI sommelier.

A Streamlit rerun loop or an impatient double-click can fire the same
label analysis many times; this keeps OpenAI usage bounded per process.

Usage:
    from cellarbook.rate_limiter import RateLimiter

    limiter = RateLimiter(requests_per_minute=20, requests_per_hour=300)
    limiter.check_and_increment()  # raises RateLimitExceeded when over
"""

import time
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List

from cellarbook.error_handling import CellarError

logger = logging.getLogger(__name__)


class RateLimitExceeded(CellarError):
    """Raised when a local request limit is exceeded."""
    pass


@dataclass
class SlidingWindow:
    """Timestamps of requests made within the last `seconds`."""

    name: str
    seconds: int
    limit: int
    stamps: Deque[float] = field(default_factory=deque)

    def prune(self, now: float) -> None:
        cutoff = now - self.seconds
        while self.stamps and self.stamps[0] < cutoff:
            self.stamps.popleft()

    def retry_after(self, now: float) -> float:
        """Seconds until the oldest request leaves the window."""
        if not self.stamps:
            return 0.0
        return max(0.0, self.seconds - (now - self.stamps[0]))

    @property
    def full(self) -> bool:
        return len(self.stamps) >= self.limit


@dataclass
class RateLimitStatus:
    """Outcome of a limit check."""

    allowed: bool = True
    reason: str = ""
    retry_after: float = 0.0


class RateLimiter:
    """
    Per-minute and per-hour sliding windows over request timestamps.

    Windows live in memory, so limits are per server process.
    """

    def __init__(
        self,
        requests_per_minute: int = 20,
        requests_per_hour: int = 300,
        clock: Callable[[], float] = time.time
    ):
        self.windows: List[SlidingWindow] = [
            SlidingWindow("minute", 60, requests_per_minute),
            SlidingWindow("hour", 3600, requests_per_hour),
        ]
        self._clock = clock
        self.total_requests = 0
        logger.info(f"RateLimiter: {requests_per_minute}/min, {requests_per_hour}/hour")

    def check_limits(self) -> RateLimitStatus:
        """Status for a request made now, without recording it."""
        now = self._clock()
        for window in self.windows:
            window.prune(now)
            if window.full:
                wait = window.retry_after(now)
                reason = (
                    f"{window.name.capitalize()} limit reached "
                    f"({window.limit} requests). Try again in {wait:.0f}s."
                )
                logger.warning(reason)
                return RateLimitStatus(allowed=False, reason=reason, retry_after=wait)
        return RateLimitStatus()

    def check_and_increment(self) -> bool:
        """
        Record a request if every window has room.

        Raises:
            RateLimitExceeded: If a window is full
        """
        status = self.check_limits()
        if not status.allowed:
            raise RateLimitExceeded(status.reason)

        now = self._clock()
        for window in self.windows:
            window.stamps.append(now)
        self.total_requests += 1
        return True

    def reset(self):
        for window in self.windows:
            window.stamps.clear()
        self.total_requests = 0
        logger.info("Rate limiter reset")
