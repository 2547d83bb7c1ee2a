"""
Origin-aware request pacing.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlparse


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    scheme = (parsed.scheme or "https").lower()
    return f"{scheme}://{parsed.netloc.lower()}"


class OriginRateLimiter:
    """
    Enforces a minimum interval between requests to the same origin.

    Each caller reserves the next free slot under the lock and sleeps
    outside it, so concurrent workers stay spaced without blocking
    requests to other origins.
    """

    def __init__(
        self,
        *,
        default_delay_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._default_delay_seconds = max(0.0, default_delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._next_slot_by_origin: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, *, url: str, crawl_delay_seconds: float | None = None) -> float:
        """
        Block until `url`'s origin may be requested again; return seconds waited.
        """

        origin = origin_of(url)
        min_interval = self._default_delay_seconds
        if crawl_delay_seconds is not None:
            min_interval = max(0.0, crawl_delay_seconds)

        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot_by_origin.get(origin, now))
            self._next_slot_by_origin[origin] = slot + min_interval

        wait_seconds = slot - now
        if wait_seconds > 0:
            self._sleep(wait_seconds)
        return max(0.0, wait_seconds)

    def reset(self, origin: str | None = None) -> None:
        with self._lock:
            if origin is None:
                self._next_slot_by_origin.clear()
            else:
                self._next_slot_by_origin.pop(origin, None)
