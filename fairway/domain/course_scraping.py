"""
fairway/domain/course_scraping.py

Domain models for course scraping batch runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fairway.scraping.types import ProcessingResult


@dataclass(frozen=True)
class CourseScrapeSummary:
    """
    Summary for one target in a batch run.
    """

    target_id: str
    name: str
    url: str
    status: str
    confidence: int = 0
    method: str | None = None
    attempts: int = 0
    processing_time: float = 0.0
    errors: list[str] = field(default_factory=list)
    result: ProcessingResult | None = None


@dataclass(frozen=True)
class BatchScrapeSummary:
    """
    Pass/fail counts for a batch run plus the per-target summaries.
    """

    total: int
    succeeded: int
    failed: int
    courses: list[CourseScrapeSummary] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return self.succeeded / self.total if self.total else 0.0
