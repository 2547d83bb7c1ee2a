"""
fairway/api/routers package marker.
"""

from fairway.api.routers.course_scraping import router as course_scraping_router

__all__ = [
    "course_scraping_router",
]
