"""
fairway/api/routers/course_scraping.py

Course scraping endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from fairway.schemas.course_scraping import (
    BatchScrapeRequest,
    BatchScrapeResponse,
    ProcessingResultResponse,
    ScrapeRequest,
    ScrapingHealthResponse,
    ScrapingStatsResponse,
)
from fairway.services.course_scraping_service import (
    CourseScrapingService,
    get_course_scraping_service,
)
from fairway.scraping.types import ScrapeTarget

router = APIRouter(prefix="/scrape", tags=["course-scraping"])


@router.post("", response_model=ProcessingResultResponse)
def scrape_course(
    request: ScrapeRequest,
    scraping_service: CourseScrapingService = Depends(get_course_scraping_service),
) -> ProcessingResultResponse:
    """
    Scrape one course website and return the extracted facts.
    """

    try:
        target = request.target.to_target(fallback_id="api-target-1")
        options = request.options.to_options() if request.options else None
        result = scraping_service.scrape(target, options)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return ProcessingResultResponse.from_result(result)


@router.post("/batch", response_model=BatchScrapeResponse)
def scrape_course_batch(
    request: BatchScrapeRequest,
    scraping_service: CourseScrapingService = Depends(get_course_scraping_service),
) -> BatchScrapeResponse:
    """
    Scrape several course websites concurrently and report pass/fail counts.
    """

    try:
        targets: list[ScrapeTarget] = [
            item.to_target(fallback_id=f"api-target-{index + 1}")
            for index, item in enumerate(request.targets)
        ]
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    options = request.options.to_options() if request.options else None
    summary = scraping_service.scrape_batch(targets, options)
    return BatchScrapeResponse.from_summary(summary)


@router.get("/stats", response_model=ScrapingStatsResponse)
def scraping_stats(
    scraping_service: CourseScrapingService = Depends(get_course_scraping_service),
) -> ScrapingStatsResponse:
    return ScrapingStatsResponse.from_snapshot(scraping_service.stats())


@router.get("/health", response_model=ScrapingHealthResponse)
def scraping_health(
    scraping_service: CourseScrapingService = Depends(get_course_scraping_service),
) -> ScrapingHealthResponse:
    return ScrapingHealthResponse.from_health(scraping_service.health())
