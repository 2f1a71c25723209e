"""Process-wide request spacing for the IGDB API."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Grant request slots no closer together than ``interval`` seconds.

    The limit belongs to the remote API, so one instance is shared by every
    caller in the process. The lock is held across the wait, which serializes
    check-then-update of the last slot and queues callers in arrival order.
    """

    def __init__(
        self,
        interval: float = 0.25,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative")
        self._interval = float(interval)
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._lock = Lock()
        self._last_slot: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def await_slot(self) -> float:
        """Block until the next slot is available and return its start time."""

        with self._lock:
            now = self._clock()
            if self._last_slot is not None:
                wait = self._last_slot + self._interval - now
                if wait > 0:
                    logger.debug("Rate limiter waiting %.3fs", wait)
                    self._sleep(wait)
                    now = self._clock()
            self._last_slot = now
            return now

    def reset(self) -> None:
        with self._lock:
            self._last_slot = None


__all__ = ["RateLimiter"]
