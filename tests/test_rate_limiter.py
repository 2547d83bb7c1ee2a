"""
tests/test_rate_limiter.py

Pytest unit tests for OriginRateLimiter with a fake clock.
"""

from __future__ import annotations

import threading

import pytest

from fairway.scraping.rate_limiter import OriginRateLimiter, origin_of


class FakeClock:
    """Monotonic clock that only moves when `sleep` is called."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def _limiter(clock: FakeClock, delay: float = 2.0) -> OriginRateLimiter:
    return OriginRateLimiter(default_delay_seconds=delay, clock=clock, sleep=clock.sleep)


def test_first_request_does_not_wait(clock: FakeClock) -> None:
    assert _limiter(clock).wait(url="https://example.com/a") == 0.0
    assert clock.sleeps == []


def test_same_origin_requests_are_spaced(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    waits = [limiter.wait(url=f"https://example.com/page-{index}") for index in range(3)]

    assert waits == [0.0, 2.0, 4.0]


def test_crawl_delay_overrides_default(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    limiter.wait(url="https://example.com/a", crawl_delay_seconds=5)
    assert limiter.wait(url="https://example.com/b", crawl_delay_seconds=5) == 5.0


def test_other_origins_are_not_delayed(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    limiter.wait(url="https://example.com/a")
    assert limiter.wait(url="https://other.example/a") == 0.0
    assert limiter.wait(url="http://example.com/a") == 0.0


def test_elapsed_time_reduces_wait(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    limiter.wait(url="https://example.com/a")
    clock.now += 1.5

    assert limiter.wait(url="https://example.com/b") == pytest.approx(0.5)


def test_concurrent_callers_get_distinct_slots(clock: FakeClock) -> None:
    limiter = _limiter(clock)
    waits: list[float] = []
    lock = threading.Lock()

    def call() -> None:
        waited = limiter.wait(url="https://example.com/x")
        with lock:
            waits.append(waited)

    threads = [threading.Thread(target=call) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(waits) == [0.0, 2.0, 4.0, 6.0]


def test_reset_clears_reservations(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    limiter.wait(url="https://example.com/a")
    limiter.reset("https://example.com")

    assert limiter.wait(url="https://example.com/b") == 0.0


def test_origin_of_normalizes_case() -> None:
    assert origin_of("HTTPS://Example.COM/Path?q=1") == "https://example.com"
