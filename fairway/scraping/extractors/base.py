"""
Base extractor abstraction for course page scraping.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import requests

from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.errors import ScrapingFailure, classify_exception
from fairway.scraping.logging_utils import log_event
from fairway.scraping.parsing import CourseFactParser
from fairway.scraping.types import (
    ProcessingResult,
    ResultMetadata,
    ScrapeOptions,
    ScrapeTarget,
    ScrapingMethod,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FetchedPage:
    """
    Raw document handed from a fetch strategy to the shared parser.
    """

    markup: str | bytes
    final_url: str
    status_code: int
    redirects: list[str] = field(default_factory=list)
    response_size: int = 0
    resources_loaded: int = 0
    screenshots: list[str] = field(default_factory=list)


class CourseExtractor(ABC):
    """
    Base class implementing the fetch, parse and classify flow shared by
    the static and rendered strategies.

    Subclasses only decide how a document is obtained; every result is
    normalized into a ProcessingResult, never an exception, for fetch and
    parse failures. Anything else propagates to the caller.
    """

    method: ScrapingMethod

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._now = now

    def scrape_basic_info(
        self,
        target: ScrapeTarget,
        options: ScrapeOptions | None = None,
    ) -> ProcessingResult:
        """
        Fetch `target` and return extracted course facts with confidence.
        """

        options = options or ScrapeOptions()
        started = self._clock()
        log_event(
            logger,
            logging.INFO,
            "fetch_started",
            target_id=target.id,
            url=target.url,
            method=self.method,
        )

        try:
            page = self.fetch_page(target, options)
            soup = CourseFactParser.parse_document(page.markup, url=page.final_url)
            extraction = CourseFactParser.extract(
                soup=soup,
                target=target,
                final_url=page.final_url,
                extracted_at=self._now(),
            )
        except (ScrapingFailure, requests.RequestException) as exc:
            error = classify_exception(exc, target.url)
            elapsed_ms = (self._clock() - started) * 1000
            log_event(
                logger,
                logging.WARNING,
                "fetch_failed",
                target_id=target.id,
                url=target.url,
                method=self.method,
                error_type=error.type,
                error_code=error.code,
                retryable=error.retryable,
                elapsed_ms=round(elapsed_ms, 1),
            )
            return ProcessingResult(
                success=False,
                source=target.url,
                processing_time=elapsed_ms,
                confidence=0,
                errors=[error],
                metadata=ResultMetadata(method=self.method, final_url=target.url),
            )

        elapsed_ms = (self._clock() - started) * 1000
        confidence = extraction.facts.confidence
        log_event(
            logger,
            logging.INFO,
            "fetch_succeeded",
            target_id=target.id,
            url=target.url,
            final_url=page.final_url,
            method=self.method,
            confidence=confidence,
            response_size=page.response_size,
            elapsed_ms=round(elapsed_ms, 1),
        )
        return ProcessingResult(
            success=True,
            source=target.url,
            processing_time=elapsed_ms,
            confidence=confidence,
            data=extraction.facts,
            contact=extraction.contact,
            images=extraction.images,
            warnings=extraction.warnings,
            metadata=ResultMetadata(
                method=self.method,
                final_url=page.final_url,
                redirects=page.redirects,
                response_size=page.response_size,
                resources_loaded=page.resources_loaded,
                screenshots=page.screenshots,
            ),
        )

    def resolve_timeout(self, options: ScrapeOptions) -> float:
        if options.timeout is not None and options.timeout > 0:
            return options.timeout
        return self.settings.timeout_seconds

    def resolve_user_agent(self, options: ScrapeOptions) -> str:
        return options.user_agent or self.settings.user_agent

    @abstractmethod
    def fetch_page(self, target: ScrapeTarget, options: ScrapeOptions) -> FetchedPage:
        """
        Retrieve the document for `target` or raise a ScrapingFailure.
        """

    def close(self) -> None:
        """
        Release held resources. Safe to call more than once.
        """
