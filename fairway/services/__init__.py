"""
fairway/services package marker.
"""

from fairway.services.course_scraping_service import (
    CourseScrapingService,
    get_course_scraping_service,
)

__all__ = [
    "CourseScrapingService",
    "get_course_scraping_service",
]
