"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

Priority = Literal["high", "medium", "low"]
SourceType = Literal["official", "directory", "community"]
ScrapingMethod = Literal["static", "dynamic"]
ErrorType = Literal[
    "network",
    "timeout",
    "parsing",
    "robots-disallowed",
    "rate-limited",
    "unknown",
]

PRIORITIES: frozenset[str] = frozenset({"high", "medium", "low"})
SOURCE_TYPES: frozenset[str] = frozenset({"official", "directory", "community"})


@dataclass
class TargetMetadata:
    """
    Running bookkeeping the batch driver keeps per target.
    """

    success_count: int = 0
    failure_count: int = 0
    avg_response_time: float = 0.0
    last_scraped: datetime | None = None


@dataclass(frozen=True)
class ScrapeTarget:
    """
    One course website to scrape.
    """

    id: str
    name: str
    url: str
    priority: Priority = "medium"
    source_type: SourceType = "official"
    selectors: dict[str, list[str]] = field(default_factory=dict)
    metadata: TargetMetadata = field(default_factory=TargetMetadata)

    def __post_init__(self) -> None:
        if not self.url or not self.url.strip():
            raise ValueError(f"Scrape target '{self.id}' has no url.")
        if self.priority not in PRIORITIES:
            raise ValueError(
                f"Invalid priority='{self.priority}' for target '{self.id}'. "
                f"Allowed: {sorted(PRIORITIES)}."
            )
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(
                f"Invalid source_type='{self.source_type}' for target '{self.id}'. "
                f"Allowed: {sorted(SOURCE_TYPES)}."
            )

    def hints_for(self, field_name: str) -> list[str]:
        return list(self.selectors.get(field_name, []))


@dataclass(frozen=True)
class ScrapeOptions:
    """
    Per-request overrides; unset values fall back to ScrapingSettings.
    """

    timeout: float | None = None
    javascript: bool = False
    screenshots: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    user_agent: str | None = None
    wait_for_selector: str | None = None
    wait_time: float | None = None


@dataclass(frozen=True)
class ContactInfo:
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    website: str | None = None
    booking_url: str | None = None


@dataclass(frozen=True)
class CourseImages:
    hero: list[str] = field(default_factory=list)
    gallery: list[str] = field(default_factory=list)
    course_map: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractedCourseFacts:
    """
    Facts pulled from one course page.

    `name` is never empty: it falls back to the target name when no
    candidate on the page looks like a course name.
    """

    name: str
    source: str
    extracted_at: datetime
    confidence: int = 0
    description: str | None = None
    architect: str | None = None
    opening_year: int | None = None
    total_yardage: int | None = None
    par_score: int | None = None
    number_of_holes: int | None = None
    greens_fee_price_range: str | None = None
    contact: ContactInfo = field(default_factory=ContactInfo)
    images: CourseImages = field(default_factory=CourseImages)


@dataclass(frozen=True)
class ScrapingError:
    """
    Classified failure attached to a ProcessingResult.
    """

    type: ErrorType
    message: str
    url: str
    retryable: bool
    code: str | None = None
    status_code: int | None = None
    retry_after: float | None = None


@dataclass(frozen=True)
class ResultMetadata:
    method: ScrapingMethod
    final_url: str
    redirects: list[str] = field(default_factory=list)
    response_size: int = 0
    resources_loaded: int = 0
    screenshots: list[str] = field(default_factory=list)
    attempts: int = 1


@dataclass(frozen=True)
class ProcessingResult:
    """
    Terminal outcome of one scrape submission.
    """

    success: bool
    source: str
    metadata: ResultMetadata
    processing_time: float = 0.0
    confidence: int = 0
    data: ExtractedCourseFacts | None = None
    contact: ContactInfo | None = None
    images: CourseImages | None = None
    errors: list[ScrapingError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within [0, 100], got {self.confidence}")
        if not self.success and (not self.errors or self.confidence != 0):
            raise ValueError("Failed results need at least one error and zero confidence.")

    @property
    def first_error(self) -> ScrapingError | None:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
