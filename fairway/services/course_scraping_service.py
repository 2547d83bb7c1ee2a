"""
fairway/services/course_scraping_service.py

Service orchestration for golf course website scraping.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from datetime import datetime, timezone
from functools import lru_cache

from fairway.domain.course_scraping import BatchScrapeSummary, CourseScrapeSummary
from fairway.scraping.config import ScrapingSettings, get_scraping_settings, load_scrape_targets
from fairway.scraping.logging_utils import log_event
from fairway.scraping.orchestrator import HealthStatus, RequestOrchestrator
from fairway.scraping.stats import StatsSnapshot
from fairway.scraping.types import ProcessingResult, ScrapeOptions, ScrapeTarget

logger = logging.getLogger(__name__)


class CourseScrapingService:
    """
    Runs course scrapes through a shared orchestrator and summarizes batches.
    """

    def __init__(
        self,
        *,
        settings: ScrapingSettings | None = None,
        orchestrator: RequestOrchestrator | None = None,
    ) -> None:
        self._settings = settings or get_scraping_settings()
        self._orchestrator = orchestrator
        self._lock = threading.Lock()

    @property
    def orchestrator(self) -> RequestOrchestrator:
        with self._lock:
            if self._orchestrator is None:
                self._orchestrator = RequestOrchestrator(settings=self._settings)
            return self._orchestrator

    def scrape(
        self,
        target: ScrapeTarget,
        options: ScrapeOptions | None = None,
    ) -> ProcessingResult:
        result = self.orchestrator.add_request(target, options)
        _update_target_metadata(target, result)
        return result

    def scrape_batch(
        self,
        targets: Sequence[ScrapeTarget],
        options: ScrapeOptions | None = None,
    ) -> BatchScrapeSummary:
        """
        Scrape every target concurrently and report pass/fail counts.

        A target rejected at submission counts as failed; the rest of the
        batch still runs.
        """

        pending: list[tuple[ScrapeTarget, Future | None, str | None]] = []
        for target in targets:
            try:
                pending.append((target, self.orchestrator.submit(target, options), None))
            except ValueError as exc:
                pending.append((target, None, str(exc)))

        courses: list[CourseScrapeSummary] = []
        for target, future, rejection in pending:
            if future is None:
                courses.append(
                    CourseScrapeSummary(
                        target_id=target.id,
                        name=target.name,
                        url=target.url,
                        status="failed",
                        errors=[rejection or "Rejected"],
                    )
                )
                continue

            result: ProcessingResult = future.result()
            _update_target_metadata(target, result)
            courses.append(_summarize(target, result))

        succeeded = sum(1 for course in courses if course.status == "success")
        summary = BatchScrapeSummary(
            total=len(courses),
            succeeded=succeeded,
            failed=len(courses) - succeeded,
            courses=courses,
        )
        log_event(
            logger,
            logging.INFO,
            "course_batch_completed",
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
        )
        return summary

    def scrape_from_file(
        self,
        *,
        targets_path: str | None = None,
        target_ids: Sequence[str] | None = None,
        options: ScrapeOptions | None = None,
    ) -> BatchScrapeSummary:
        targets = load_scrape_targets(targets_path=targets_path or self._settings.targets_path)
        selected = _select_targets(targets, target_ids)
        if not selected:
            raise ValueError("No scrape targets matched the run criteria.")
        return self.scrape_batch(selected, options)

    def stats(self) -> StatsSnapshot:
        return self.orchestrator.get_stats()

    def health(self) -> HealthStatus:
        return self.orchestrator.get_health_status()

    def shutdown(self) -> None:
        with self._lock:
            orchestrator = self._orchestrator
            self._orchestrator = None
        if orchestrator is not None:
            orchestrator.cleanup()


def _select_targets(
    targets: list[ScrapeTarget],
    target_ids: Sequence[str] | None,
) -> list[ScrapeTarget]:
    if not target_ids:
        return targets
    normalized = {item.strip().lower() for item in target_ids if item.strip()}
    if not normalized:
        return targets
    return [target for target in targets if target.id.lower() in normalized]


def _summarize(target: ScrapeTarget, result: ProcessingResult) -> CourseScrapeSummary:
    return CourseScrapeSummary(
        target_id=target.id,
        name=result.data.name if result.data else target.name,
        url=target.url,
        status="success" if result.success else "failed",
        confidence=result.confidence,
        method=result.metadata.method,
        attempts=result.metadata.attempts,
        processing_time=result.processing_time,
        errors=[f"{error.type}: {error.message}" for error in result.errors],
        result=result,
    )


def _update_target_metadata(target: ScrapeTarget, result: ProcessingResult) -> None:
    metadata = target.metadata
    if result.success:
        metadata.success_count += 1
    else:
        metadata.failure_count += 1
    runs = metadata.success_count + metadata.failure_count
    metadata.avg_response_time += (result.processing_time - metadata.avg_response_time) / runs
    metadata.last_scraped = datetime.now(timezone.utc)


@lru_cache(maxsize=1)
def get_course_scraping_service() -> CourseScrapingService:
    """
    Build and cache the course scraping service.
    """

    return CourseScrapingService()
