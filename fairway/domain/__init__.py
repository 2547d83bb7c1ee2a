"""
fairway/domain package marker.
"""

from fairway.domain.course_scraping import BatchScrapeSummary, CourseScrapeSummary

__all__ = [
    "BatchScrapeSummary",
    "CourseScrapeSummary",
]
