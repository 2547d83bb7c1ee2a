"""
Queueing, pacing and retry controller for course scraping.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from urllib.parse import urlparse

import requests

from fairway.scraping.circuit_breaker import CircuitBreaker
from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.errors import circuit_open_error, robots_disallowed_error
from fairway.scraping.extractors import CourseExtractor, DynamicExtractor, StaticExtractor
from fairway.scraping.logging_utils import log_event
from fairway.scraping.rate_limiter import OriginRateLimiter
from fairway.scraping.robots import PolicyGate
from fairway.scraping.stats import RequestStats, StatsSnapshot
from fairway.scraping.strategy import (
    StrategySelector,
    better_result,
    select_strategy,
    should_escalate,
)
from fairway.scraping.types import (
    ProcessingResult,
    ResultMetadata,
    ScrapeOptions,
    ScrapeTarget,
    ScrapingError,
    ScrapingMethod,
)

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}
SHUTDOWN_RANK = 1_000
DEGRADED_SUCCESS_RATE = 0.8
UNHEALTHY_SUCCESS_RATE = 0.5
QUEUE_PRESSURE_RATIO = 0.8
HEALTH_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


@dataclass
class _Job:
    target: ScrapeTarget
    options: ScrapeOptions
    future: Future


@dataclass(frozen=True)
class HealthStatus:
    status: str
    rolling_success_rate: float | None
    queue_depth: int
    in_flight: int
    active_workers: int
    reasons: list[str] = field(default_factory=list)
    open_circuits: dict[str, str] = field(default_factory=dict)


def queue_rank(target: ScrapeTarget) -> int:
    """
    Lower ranks are served first; official sources sort ahead of other
    sources at the same priority.
    """

    boost = 0 if target.source_type == "official" else 1
    return PRIORITY_RANK[target.priority] * 2 + boost


class RequestOrchestrator:
    """
    Runs scrape submissions on a bounded worker pool.

    Every attempt passes the robots gate and the per-origin pacer before
    an extractor is called. Retryable failures are retried in place with
    exponential backoff, so each submission resolves to exactly one result.
    """

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        session: requests.Session | None = None,
        policy_gate: PolicyGate | None = None,
        rate_limiter: OriginRateLimiter | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        static_extractor: CourseExtractor | None = None,
        dynamic_extractor: CourseExtractor | None = None,
        strategy: StrategySelector = select_strategy,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._owns_session = session is None
        self._session = session or requests.Session()
        self.policy_gate = policy_gate or PolicyGate(
            session=self._session,
            user_agent=settings.user_agent,
            timeout_seconds=settings.robots_timeout_seconds,
            ttl_seconds=settings.robots_cache_ttl_seconds,
            allow_when_unreachable=settings.allow_when_robots_unreachable,
        )
        self.rate_limiter = rate_limiter or OriginRateLimiter(
            default_delay_seconds=settings.default_crawl_delay_seconds,
            clock=clock,
            sleep=sleep,
        )
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_seconds=settings.circuit_cooldown_seconds,
            clock=clock,
        )
        self.static_extractor = static_extractor or StaticExtractor(
            settings=settings,
            session=self._session,
        )
        if dynamic_extractor is None and settings.enable_dynamic:
            dynamic_extractor = DynamicExtractor(settings=settings)
        self.dynamic_extractor = dynamic_extractor
        self.strategy = strategy
        self.stats = RequestStats()

        self._clock = clock
        self._sleep = sleep
        self._queue: queue.PriorityQueue[tuple[int, int, _Job | None]] = queue.PriorityQueue(
            maxsize=settings.max_queue_size
        )
        self._sequence = itertools.count()
        self._workers: list[threading.Thread] = []
        self._submit_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._in_flight = 0
        self._closed = False

    def submit(self, target: ScrapeTarget, options: ScrapeOptions | None = None) -> Future:
        """
        Queue a target and return a future resolving to its ProcessingResult.

        Blocks while the queue is full.
        """

        _validate_url(target)
        job = _Job(target=target, options=options or ScrapeOptions(), future=Future())
        with self._submit_lock:
            if self._closed:
                raise RuntimeError("RequestOrchestrator has been cleaned up.")
            self._start_workers()
            self._queue.put((queue_rank(target), next(self._sequence), job))

        log_event(
            logger,
            logging.INFO,
            "request_queued",
            target_id=target.id,
            url=target.url,
            priority=target.priority,
            source_type=target.source_type,
            queue_depth=self._queue.qsize(),
        )
        return job.future

    def add_request(
        self,
        target: ScrapeTarget,
        options: ScrapeOptions | None = None,
    ) -> ProcessingResult:
        return self.submit(target, options).result()

    def get_stats(self) -> StatsSnapshot:
        with self._state_lock:
            in_flight = self._in_flight
        snapshot = self.stats.snapshot(queue_depth=self._queue.qsize(), in_flight=in_flight)
        return replace(snapshot, open_circuits=dict(self.circuit_breaker.states()))

    def get_health_status(self) -> HealthStatus:
        snapshot = self.get_stats()
        active_workers = sum(1 for worker in self._workers if worker.is_alive())
        status = "healthy"
        reasons: list[str] = []

        def escalate(level: str, reason: str) -> None:
            nonlocal status
            if HEALTH_SEVERITY[level] > HEALTH_SEVERITY[status]:
                status = level
            reasons.append(reason)

        if self._closed:
            escalate("unhealthy", "Orchestrator has been cleaned up")
        elif self._workers and active_workers < len(self._workers):
            escalate(
                "unhealthy",
                f"{len(self._workers) - active_workers} of {len(self._workers)} workers stopped",
            )

        rate = snapshot.rolling_success_rate
        if rate is not None and rate < UNHEALTHY_SUCCESS_RATE:
            escalate("unhealthy", f"Success rate {rate:.0%} below {UNHEALTHY_SUCCESS_RATE:.0%}")
        elif rate is not None and rate < DEGRADED_SUCCESS_RATE:
            escalate("degraded", f"Success rate {rate:.0%} below {DEGRADED_SUCCESS_RATE:.0%}")

        if snapshot.queue_depth >= self.settings.max_queue_size * QUEUE_PRESSURE_RATIO:
            escalate("degraded", f"Queue depth {snapshot.queue_depth} near capacity")

        for origin, state in sorted(snapshot.open_circuits.items()):
            escalate("degraded", f"Circuit {state} for {origin}")

        return HealthStatus(
            status=status,
            rolling_success_rate=rate,
            queue_depth=snapshot.queue_depth,
            in_flight=snapshot.in_flight,
            active_workers=active_workers,
            reasons=reasons,
            open_circuits=snapshot.open_circuits,
        )

    def cleanup(self) -> None:
        """
        Finish queued work, stop workers and release fetch resources.
        """

        with self._submit_lock:
            if self._closed:
                return
            self._closed = True
            workers = list(self._workers)

        for _ in workers:
            self._queue.put((SHUTDOWN_RANK, next(self._sequence), None))
        for worker in workers:
            worker.join()

        self.static_extractor.close()
        if self.dynamic_extractor is not None:
            self.dynamic_extractor.close()
        if self._owns_session:
            self._session.close()
        log_event(logger, logging.INFO, "orchestrator_stopped", workers=len(workers))

    def __enter__(self) -> RequestOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def _start_workers(self) -> None:
        if self._workers:
            return
        for index in range(self.settings.max_concurrency):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"scrape-worker-{index + 1}",
                daemon=True,
            )
            worker.start()
            self._workers.append(worker)

    def _worker_loop(self) -> None:
        while True:
            _, _, job = self._queue.get()
            try:
                if job is None:
                    return
                if not job.future.set_running_or_notify_cancel():
                    continue
                with self._state_lock:
                    self._in_flight += 1
                try:
                    result = self._process(job)
                except Exception as exc:
                    log_event(
                        logger,
                        logging.ERROR,
                        "request_crashed",
                        target_id=job.target.id,
                        url=job.target.url,
                        error=str(exc),
                    )
                    result = _failed_result(
                        job.target,
                        ScrapingError(
                            type="unknown",
                            code=type(exc).__name__,
                            message=str(exc) or type(exc).__name__,
                            url=job.target.url,
                            retryable=False,
                        ),
                        method="static",
                        attempts=1,
                    )
                finally:
                    with self._state_lock:
                        self._in_flight -= 1
                self.stats.record_result(result)
                job.future.set_result(result)
            finally:
                self._queue.task_done()

    def _process(self, job: _Job) -> ProcessingResult:
        target, options = job.target, job.options
        started = self._clock()
        method = self.strategy(target, options)
        attempts = 0

        while True:
            attempts += 1
            self.stats.record_attempt()

            decision = self.policy_gate.can_scrape(
                target.url,
                options.user_agent or self.settings.user_agent,
            )
            if not decision.allowed:
                self.stats.record_robots_block()
                log_event(
                    logger,
                    logging.WARNING,
                    "robots_blocked",
                    target_id=target.id,
                    url=target.url,
                    reason=decision.reason,
                )
                result = _failed_result(
                    target,
                    robots_disallowed_error(target.url, decision.reason),
                    method=method,
                    attempts=attempts,
                )
                break

            if self.circuit_breaker.allow(target.url):
                result = self._attempt(target, options, method, decision.crawl_delay)
            else:
                self.stats.record_circuit_rejection()
                log_event(
                    logger,
                    logging.WARNING,
                    "circuit_open_rejected",
                    target_id=target.id,
                    url=target.url,
                    attempt=attempts,
                )
                result = _failed_result(
                    target,
                    circuit_open_error(target.url),
                    method=method,
                    attempts=attempts,
                )

            error = result.first_error
            if result.success or error is None or not error.retryable:
                break
            if attempts >= self.settings.max_attempts:
                break

            backoff = self._backoff_seconds(attempts, error)
            self.stats.record_retry()
            log_event(
                logger,
                logging.INFO,
                "request_retry_scheduled",
                target_id=target.id,
                url=target.url,
                attempt=attempts,
                error_type=error.type,
                error_code=error.code,
                backoff_seconds=backoff,
            )
            self._sleep(backoff)

        result = replace(
            result,
            processing_time=(self._clock() - started) * 1000,
            metadata=replace(result.metadata, attempts=attempts),
        )
        if result.success:
            log_event(
                logger,
                logging.INFO,
                "request_completed",
                target_id=target.id,
                url=target.url,
                method=result.metadata.method,
                confidence=result.confidence,
                attempts=attempts,
            )
        else:
            failure = result.first_error
            log_event(
                logger,
                logging.WARNING,
                "request_failed",
                target_id=target.id,
                url=target.url,
                method=result.metadata.method,
                attempts=attempts,
                error_type=failure.type if failure else None,
                error_code=failure.code if failure else None,
            )
        return result

    def _attempt(
        self,
        target: ScrapeTarget,
        options: ScrapeOptions,
        method: ScrapingMethod,
        crawl_delay: float | None,
    ) -> ProcessingResult:
        try:
            self.rate_limiter.wait(url=target.url, crawl_delay_seconds=crawl_delay)
            started = self._clock()
            result = self._run_strategy(target, options, method, crawl_delay)
        except Exception:
            self.circuit_breaker.release(target.url)
            raise
        self.stats.record_attempt_outcome(target.url, result, (self._clock() - started) * 1000)
        self.circuit_breaker.record(target.url, result)
        return result

    def _run_strategy(
        self,
        target: ScrapeTarget,
        options: ScrapeOptions,
        method: ScrapingMethod,
        crawl_delay: float | None,
    ) -> ProcessingResult:
        result = self._extractor_for(method).scrape_basic_info(target, options)
        if not should_escalate(
            result,
            threshold=self.settings.dynamic_confidence_threshold,
            enabled=self.dynamic_extractor is not None,
        ):
            return result

        self.stats.record_escalation()
        log_event(
            logger,
            logging.INFO,
            "request_escalated",
            target_id=target.id,
            url=target.url,
            static_confidence=result.confidence,
        )
        self.rate_limiter.wait(url=target.url, crawl_delay_seconds=crawl_delay)
        rendered = self.dynamic_extractor.scrape_basic_info(target, options)
        return better_result(result, rendered)

    def _extractor_for(self, method: ScrapingMethod) -> CourseExtractor:
        if method == "dynamic":
            if self.dynamic_extractor is not None:
                return self.dynamic_extractor
            log_event(logger, logging.WARNING, "dynamic_unavailable")
        return self.static_extractor

    def _backoff_seconds(self, attempts: int, error: ScrapingError) -> float:
        backoff = self.settings.backoff_initial_seconds * (
            self.settings.backoff_multiplier ** (attempts - 1)
        )
        if error.retry_after is not None:
            backoff = max(backoff, error.retry_after)
        return min(backoff, self.settings.backoff_max_seconds)


def _validate_url(target: ScrapeTarget) -> None:
    parsed = urlparse(target.url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"Scrape target '{target.id}' has an invalid url: {target.url!r}")


def _failed_result(
    target: ScrapeTarget,
    error: ScrapingError,
    *,
    method: ScrapingMethod,
    attempts: int,
) -> ProcessingResult:
    return ProcessingResult(
        success=False,
        source=target.url,
        confidence=0,
        errors=[error],
        metadata=ResultMetadata(method=method, final_url=target.url, attempts=attempts),
    )
