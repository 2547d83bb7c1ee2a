"""
tests/test_circuit_breaker.py

Pytest unit tests for the per-origin CircuitBreaker and its use by
RequestOrchestrator.

Coverage
--------
- Opens after consecutive origin failures and refuses attempts while open
- Half-open admits a single trial after the cooldown
- Trial success closes the circuit, trial failure reopens it
- Client-side errors (404, parsing) do not count against the origin
- Orchestrator short-circuits without fetching and reports open circuits
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from fairway.scraping.circuit_breaker import CircuitBreaker, counts_against_origin
from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.orchestrator import RequestOrchestrator
from fairway.scraping.robots import RobotsDecision
from fairway.scraping.types import (
    ExtractedCourseFacts,
    ProcessingResult,
    ResultMetadata,
    ScrapeOptions,
    ScrapeTarget,
    ScrapingError,
)

URL = "https://club.example/course"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _success(url: str = URL) -> ProcessingResult:
    return ProcessingResult(
        success=True,
        source=url,
        confidence=80,
        data=ExtractedCourseFacts(
            name="Club Golf Course",
            source=url,
            extracted_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
            confidence=80,
        ),
        metadata=ResultMetadata(method="static", final_url=url),
    )


def _failure(
    url: str = URL,
    *,
    type: str = "network",
    code: str = "503",
    retryable: bool = True,
) -> ProcessingResult:
    return ProcessingResult(
        success=False,
        source=url,
        errors=[
            ScrapingError(
                type=type,
                code=code,
                message=f"failed with {code}",
                url=url,
                retryable=retryable,
            )
        ],
        metadata=ResultMetadata(method="static", final_url=url),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=3, cooldown_seconds=60.0, clock=clock)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestCircuitStates:
    def test_opens_after_threshold(self, breaker: CircuitBreaker) -> None:
        for _ in range(2):
            breaker.record(URL, _failure())
        assert breaker.state(URL) == "closed"
        assert breaker.allow(URL) is True

        breaker.record(URL, _failure(code="timeout"))

        assert breaker.state(URL) == "open"
        assert breaker.allow(URL) is False
        assert breaker.allow("https://club.example/other-page") is False
        assert breaker.allow("https://other.example/") is True
        assert breaker.states() == {"https://club.example": "open"}

    def test_success_resets_consecutive_failures(self, breaker: CircuitBreaker) -> None:
        breaker.record(URL, _failure())
        breaker.record(URL, _failure())
        breaker.record(URL, _success())
        breaker.record(URL, _failure())
        breaker.record(URL, _failure())

        assert breaker.state(URL) == "closed"

    def test_half_open_admits_one_trial(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure(URL)

        clock.now = 59.0
        assert breaker.allow(URL) is False

        clock.now = 61.0
        assert breaker.allow(URL) is True
        assert breaker.state(URL) == "half-open"
        assert breaker.allow(URL) is False

    def test_trial_success_closes(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure(URL)
        clock.now = 61.0
        assert breaker.allow(URL) is True

        breaker.record(URL, _success())

        assert breaker.state(URL) == "closed"
        assert breaker.states() == {}
        assert breaker.allow(URL) is True

    def test_trial_failure_reopens_for_another_cooldown(
        self,
        breaker: CircuitBreaker,
        clock: FakeClock,
    ) -> None:
        for _ in range(3):
            breaker.record_failure(URL)
        clock.now = 61.0
        assert breaker.allow(URL) is True

        breaker.record(URL, _failure())

        assert breaker.state(URL) == "open"
        clock.now = 100.0
        assert breaker.allow(URL) is False
        clock.now = 122.0
        assert breaker.allow(URL) is True

    def test_released_trial_can_be_retaken(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure(URL)
        clock.now = 61.0
        assert breaker.allow(URL) is True

        breaker.release(URL)

        assert breaker.state(URL) == "half-open"
        assert breaker.allow(URL) is True

    def test_reset(self, breaker: CircuitBreaker) -> None:
        for _ in range(3):
            breaker.record_failure(URL)
        breaker.reset(URL)
        assert breaker.state(URL) == "closed"


@pytest.mark.parametrize(
    ("result", "expected"),
    [
        (_failure(code="503"), True),
        (_failure(code="timeout"), True),
        (_failure(type="rate-limited", code="429"), True),
        (_failure(code="404", retryable=False), False),
        (_failure(type="parsing", code="parse_failed", retryable=False), False),
        (_success(), False),
    ],
)
def test_only_origin_failures_count(result: ProcessingResult, expected: bool) -> None:
    assert counts_against_origin(result) is expected


def test_not_found_pages_never_open_the_circuit(breaker: CircuitBreaker) -> None:
    for _ in range(10):
        breaker.record(URL, _failure(code="404", retryable=False))
    assert breaker.state(URL) == "closed"


# ---------------------------------------------------------------------------
# Orchestrator integration
# ---------------------------------------------------------------------------


class ScriptedExtractor:
    def __init__(self, outcomes: list[ProcessingResult | None]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def scrape_basic_info(self, target: ScrapeTarget, options: ScrapeOptions | None = None):
        with self._lock:
            self.calls.append(target.url)
            outcome = self.outcomes.pop(0) if self.outcomes else None
        return outcome if outcome is not None else _success(target.url)

    def close(self) -> None:
        pass


class AllowAllGate:
    def can_scrape(self, url: str, user_agent: str | None = None) -> RobotsDecision:
        return RobotsDecision(allowed=True, checked_at=datetime.now(timezone.utc))


def _orchestrator(static: ScriptedExtractor, clock: FakeClock) -> RequestOrchestrator:
    settings = ScrapingSettings(
        max_concurrency=1,
        default_crawl_delay_seconds=0.0,
        enable_dynamic=False,
        circuit_failure_threshold=2,
        circuit_cooldown_seconds=60.0,
    )
    return RequestOrchestrator(
        settings=settings,
        policy_gate=AllowAllGate(),  # type: ignore[arg-type]
        static_extractor=static,  # type: ignore[arg-type]
        clock=clock,
        sleep=lambda seconds: None,
    )


class TestOrchestratorCircuit:
    def test_open_circuit_short_circuits_without_fetching(self, clock: FakeClock) -> None:
        static = ScriptedExtractor([_failure(), _failure(), _failure(), _failure()])
        orchestrator = _orchestrator(static, clock)
        target = ScrapeTarget(id="club", name="Club Golf", url=URL)

        first = orchestrator.add_request(target)
        assert len(static.calls) == 2
        assert first.success is False
        assert first.errors[0].code == "circuit_open"
        assert first.errors[0].type == "network"
        assert first.errors[0].retryable is True
        assert first.metadata.attempts == 3

        second = orchestrator.add_request(target)
        assert second.errors[0].code == "circuit_open"
        assert len(static.calls) == 2

        stats = orchestrator.get_stats()
        health = orchestrator.get_health_status()
        assert stats.circuit_rejections == 4
        assert stats.open_circuits == {"https://club.example": "open"}
        assert stats.by_origin["https://club.example"].requests == 2
        assert health.open_circuits == {"https://club.example": "open"}
        assert "Circuit open for https://club.example" in health.reasons
        assert health.status != "healthy"

        orchestrator.cleanup()

    def test_trial_after_cooldown_closes_circuit(self, clock: FakeClock) -> None:
        static = ScriptedExtractor([_failure(), _failure(), _failure()])
        orchestrator = _orchestrator(static, clock)
        target = ScrapeTarget(id="club", name="Club Golf", url=URL)

        orchestrator.add_request(target)
        assert orchestrator.get_stats().open_circuits == {"https://club.example": "open"}

        clock.now = 61.0
        static.outcomes = []
        recovered = orchestrator.add_request(target)

        assert recovered.success is True
        assert len(static.calls) == 3
        assert orchestrator.get_stats().open_circuits == {}
        assert orchestrator.get_health_status().open_circuits == {}

        orchestrator.cleanup()

    def test_robots_check_runs_before_circuit(self, clock: FakeClock) -> None:
        class DenyGate:
            def can_scrape(self, url: str, user_agent: str | None = None) -> RobotsDecision:
                return RobotsDecision(
                    allowed=False,
                    checked_at=datetime.now(timezone.utc),
                    reason="blocked",
                )

        static = ScriptedExtractor([])
        orchestrator = _orchestrator(static, clock)
        orchestrator.policy_gate = DenyGate()  # type: ignore[assignment]
        for _ in range(2):
            orchestrator.circuit_breaker.record_failure(URL)

        result = orchestrator.add_request(ScrapeTarget(id="club", name="Club Golf", url=URL))
        orchestrator.cleanup()

        assert result.errors[0].type == "robots-disallowed"
        assert orchestrator.get_stats().circuit_rejections == 0
