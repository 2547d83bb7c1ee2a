"""
Per-origin circuit breaker for failing course sites.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from fairway.scraping.logging_utils import log_event
from fairway.scraping.rate_limiter import origin_of
from fairway.scraping.types import ProcessingResult

logger = logging.getLogger(__name__)

CircuitState = Literal["closed", "open", "half-open"]
ORIGIN_FAILURE_TYPES = frozenset({"network", "rate-limited"})


@dataclass
class _Circuit:
    state: CircuitState = "closed"
    failures: int = 0
    opened_at: float = 0.0
    trial_in_flight: bool = False


def counts_against_origin(result: ProcessingResult) -> bool:
    """
    True for failures that say the origin itself is struggling.

    Timeouts, connection errors, 5xx and 429 count. A 404 or a page that
    would not parse means the site answered, so it does not.
    """

    error = result.first_error
    return (
        not result.success
        and error is not None
        and error.retryable
        and error.type in ORIGIN_FAILURE_TYPES
    )


class CircuitBreaker:
    """
    Stops fetching from an origin after repeated failures.

    After `failure_threshold` consecutive failures the circuit opens and
    attempts are refused for `cooldown_seconds`. Then a single trial
    attempt is let through (half-open): success closes the circuit, failure
    opens it for another cooldown.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._circuits: dict[str, _Circuit] = {}

    def allow(self, url: str) -> bool:
        origin = origin_of(url)
        with self._lock:
            circuit = self._circuits.get(origin)
            if circuit is None or circuit.state == "closed":
                return True
            if circuit.state == "open":
                if self._clock() - circuit.opened_at < self.cooldown_seconds:
                    return False
                circuit.state = "half-open"
                circuit.trial_in_flight = False
            if circuit.trial_in_flight:
                return False
            circuit.trial_in_flight = True
        log_event(logger, logging.INFO, "circuit_half_open", origin=origin)
        return True

    def record(self, url: str, result: ProcessingResult) -> None:
        if counts_against_origin(result):
            self.record_failure(url)
        else:
            self.record_success(url)

    def record_success(self, url: str) -> None:
        origin = origin_of(url)
        with self._lock:
            circuit = self._circuits.get(origin)
            if circuit is None:
                return
            was_open = circuit.state != "closed"
            circuit.state = "closed"
            circuit.failures = 0
            circuit.trial_in_flight = False
        if was_open:
            log_event(logger, logging.INFO, "circuit_closed", origin=origin)

    def record_failure(self, url: str) -> None:
        origin = origin_of(url)
        with self._lock:
            circuit = self._circuits.setdefault(origin, _Circuit())
            circuit.failures += 1
            circuit.trial_in_flight = False
            if circuit.state == "open":
                return
            if circuit.state == "closed" and circuit.failures < self.failure_threshold:
                return
            circuit.state = "open"
            circuit.opened_at = self._clock()
            failures = circuit.failures
        log_event(
            logger,
            logging.WARNING,
            "circuit_opened",
            origin=origin,
            failures=failures,
            cooldown_seconds=self.cooldown_seconds,
        )

    def release(self, url: str) -> None:
        """Give back a half-open trial whose attempt never produced a result."""
        with self._lock:
            circuit = self._circuits.get(origin_of(url))
            if circuit is not None:
                circuit.trial_in_flight = False

    def state(self, url: str) -> CircuitState:
        with self._lock:
            circuit = self._circuits.get(origin_of(url))
            return circuit.state if circuit else "closed"

    def states(self) -> dict[str, CircuitState]:
        """Origins whose circuit is not closed."""
        with self._lock:
            return {
                origin: circuit.state
                for origin, circuit in self._circuits.items()
                if circuit.state != "closed"
            }

    def reset(self, url: str | None = None) -> None:
        with self._lock:
            if url is None:
                self._circuits.clear()
            else:
                self._circuits.pop(origin_of(url), None)
