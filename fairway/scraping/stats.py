"""
Thread-safe request statistics for the orchestrator.
"""

from __future__ import annotations

import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fairway.scraping.rate_limiter import origin_of
from fairway.scraping.types import ProcessingResult

ROLLING_WINDOW = 100


@dataclass
class OriginStats:
    requests: int = 0
    successes: int = 0
    failures: int = 0
    avg_response_time: float = 0.0
    last_request: datetime | None = None


@dataclass(frozen=True)
class StatsSnapshot:
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_attempts: int
    retries: int
    robots_blocked: int
    escalations: int
    average_response_time: float
    rolling_success_rate: float | None
    queue_depth: int
    in_flight: int
    errors_by_type: dict[str, int] = field(default_factory=dict)
    by_origin: dict[str, OriginStats] = field(default_factory=dict)
    circuit_rejections: int = 0
    open_circuits: dict[str, str] = field(default_factory=dict)


class RequestStats:
    """
    Counters updated by worker threads and read by monitoring callers.
    """

    def __init__(self, *, window: int = ROLLING_WINDOW) -> None:
        self._lock = threading.Lock()
        self._recent: deque[bool] = deque(maxlen=window)
        self._errors_by_type: Counter[str] = Counter()
        self._by_origin: dict[str, OriginStats] = {}
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._attempts = 0
        self._retries = 0
        self._robots_blocked = 0
        self._escalations = 0
        self._circuit_rejections = 0
        self._total_response_time = 0.0

    def record_attempt(self) -> None:
        with self._lock:
            self._attempts += 1

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1

    def record_robots_block(self) -> None:
        with self._lock:
            self._robots_blocked += 1

    def record_escalation(self) -> None:
        with self._lock:
            self._escalations += 1

    def record_circuit_rejection(self) -> None:
        with self._lock:
            self._circuit_rejections += 1

    def record_attempt_outcome(self, url: str, result: ProcessingResult, elapsed_ms: float) -> None:
        """
        Record one completed fetch attempt, retried or not.

        Feeds the rolling success window and the per-origin breakdown.
        """

        origin = origin_of(url)
        with self._lock:
            self._recent.append(result.success)
            stats = self._by_origin.setdefault(origin, OriginStats())
            stats.requests += 1
            if result.success:
                stats.successes += 1
            else:
                stats.failures += 1
            stats.avg_response_time += (elapsed_ms - stats.avg_response_time) / stats.requests
            stats.last_request = datetime.now(timezone.utc)

    def record_result(self, result: ProcessingResult) -> None:
        """
        Record the terminal result of one submission.
        """

        with self._lock:
            self._total += 1
            self._total_response_time += result.processing_time
            if result.success:
                self._successful += 1
            else:
                self._failed += 1
                for error in result.errors:
                    self._errors_by_type[error.type] += 1

    def rolling_success_rate(self) -> float | None:
        with self._lock:
            if not self._recent:
                return None
            return sum(self._recent) / len(self._recent)

    def snapshot(self, *, queue_depth: int, in_flight: int) -> StatsSnapshot:
        with self._lock:
            rolling = sum(self._recent) / len(self._recent) if self._recent else None
            return StatsSnapshot(
                total_requests=self._total,
                successful_requests=self._successful,
                failed_requests=self._failed,
                total_attempts=self._attempts,
                retries=self._retries,
                robots_blocked=self._robots_blocked,
                escalations=self._escalations,
                average_response_time=(
                    self._total_response_time / self._total if self._total else 0.0
                ),
                rolling_success_rate=rolling,
                queue_depth=queue_depth,
                in_flight=in_flight,
                errors_by_type=dict(self._errors_by_type),
                by_origin={
                    origin: OriginStats(
                        requests=item.requests,
                        successes=item.successes,
                        failures=item.failures,
                        avg_response_time=item.avg_response_time,
                        last_request=item.last_request,
                    )
                    for origin, item in self._by_origin.items()
                },
                circuit_rejections=self._circuit_rejections,
            )
