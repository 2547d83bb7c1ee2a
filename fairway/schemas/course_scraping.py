"""
fairway/schemas/course_scraping.py

Request and response schemas for course scraping operations.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from fairway.domain.course_scraping import BatchScrapeSummary
from fairway.scraping.config.loader import normalize_selectors
from fairway.scraping.orchestrator import HealthStatus
from fairway.scraping.stats import StatsSnapshot
from fairway.scraping.types import ProcessingResult, ScrapeOptions, ScrapeTarget


class ScrapeTargetRequest(BaseModel):
    """
    API request model for one course website.
    """

    id: str | None = None
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    priority: Literal["high", "medium", "low"] = "medium"
    source_type: Literal["official", "directory", "community"] = "official"
    selectors: dict[str, list[str]] = Field(default_factory=dict)

    def to_target(self, *, fallback_id: str) -> ScrapeTarget:
        return ScrapeTarget(
            id=self.id or fallback_id,
            name=self.name,
            url=self.url.strip(),
            priority=self.priority,
            source_type=self.source_type,
            selectors=normalize_selectors(self.selectors),
        )


class ScrapeOptionsRequest(BaseModel):
    timeout: float | None = Field(default=None, gt=0)
    javascript: bool = False
    screenshots: bool = False
    headers: dict[str, str] = Field(default_factory=dict)
    user_agent: str | None = None
    wait_for_selector: str | None = None
    wait_time: float | None = Field(default=None, ge=0)

    def to_options(self) -> ScrapeOptions:
        return ScrapeOptions(**self.model_dump())


class ScrapeRequest(BaseModel):
    target: ScrapeTargetRequest
    options: ScrapeOptionsRequest | None = None


class BatchScrapeRequest(BaseModel):
    targets: list[ScrapeTargetRequest] = Field(..., min_length=1)
    options: ScrapeOptionsRequest | None = None


class ScrapingErrorResponse(BaseModel):
    type: str
    code: str | None = None
    message: str
    url: str
    status_code: int | None = None
    retryable: bool
    retry_after: float | None = None


class ResultMetadataResponse(BaseModel):
    method: str
    final_url: str
    redirects: list[str] = Field(default_factory=list)
    response_size: int = Field(..., ge=0)
    resources_loaded: int = Field(..., ge=0)
    screenshots: list[str] = Field(default_factory=list)
    attempts: int = Field(..., ge=0)


class ProcessingResultResponse(BaseModel):
    """
    API response model for one scrape result.
    """

    success: bool
    source: str
    confidence: int = Field(..., ge=0, le=100)
    processing_time: float = Field(..., ge=0)
    data: dict[str, Any] | None = None
    errors: list[ScrapingErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: ResultMetadataResponse

    @classmethod
    def from_result(cls, result: ProcessingResult) -> ProcessingResultResponse:
        return cls(
            success=result.success,
            source=result.source,
            confidence=result.confidence,
            processing_time=max(0.0, result.processing_time),
            data=asdict(result.data) if result.data is not None else None,
            errors=[ScrapingErrorResponse(**asdict(error)) for error in result.errors],
            warnings=result.warnings,
            metadata=ResultMetadataResponse(**asdict(result.metadata)),
        )


class CourseScrapeSummaryResponse(BaseModel):
    target_id: str
    name: str
    url: str
    status: str
    confidence: int = Field(..., ge=0, le=100)
    method: str | None = None
    attempts: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)


class BatchScrapeResponse(BaseModel):
    """
    API response model for a batch scrape.
    """

    total: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    courses: list[CourseScrapeSummaryResponse] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: BatchScrapeSummary) -> BatchScrapeResponse:
        return cls(
            total=summary.total,
            succeeded=summary.succeeded,
            failed=summary.failed,
            courses=[
                CourseScrapeSummaryResponse(
                    target_id=course.target_id,
                    name=course.name,
                    url=course.url,
                    status=course.status,
                    confidence=course.confidence,
                    method=course.method,
                    attempts=course.attempts,
                    errors=course.errors,
                )
                for course in summary.courses
            ],
        )


class OriginStatsResponse(BaseModel):
    requests: int
    successes: int
    failures: int
    avg_response_time: float
    last_request: datetime | None = None


class ScrapingStatsResponse(BaseModel):
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_attempts: int
    retries: int
    robots_blocked: int
    escalations: int
    average_response_time: float
    rolling_success_rate: float | None = None
    queue_depth: int
    in_flight: int
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    by_origin: dict[str, OriginStatsResponse] = Field(default_factory=dict)
    circuit_rejections: int = 0
    open_circuits: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: StatsSnapshot) -> ScrapingStatsResponse:
        return cls.model_validate(asdict(snapshot))


class ScrapingHealthResponse(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    rolling_success_rate: float | None = None
    queue_depth: int
    in_flight: int
    active_workers: int
    reasons: list[str] = Field(default_factory=list)
    open_circuits: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_health(cls, health: HealthStatus) -> ScrapingHealthResponse:
        return cls.model_validate(asdict(health))
