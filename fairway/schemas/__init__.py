"""
fairway/schemas package marker.
"""

from fairway.schemas.course_scraping import (
    BatchScrapeRequest,
    BatchScrapeResponse,
    ProcessingResultResponse,
    ScrapeRequest,
    ScrapingHealthResponse,
    ScrapingStatsResponse,
)

__all__ = [
    "BatchScrapeRequest",
    "BatchScrapeResponse",
    "ProcessingResultResponse",
    "ScrapeRequest",
    "ScrapingHealthResponse",
    "ScrapingStatsResponse",
]
