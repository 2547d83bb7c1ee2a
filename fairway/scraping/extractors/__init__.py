"""
Fetch strategies for course pages.
"""

from fairway.scraping.extractors.base import CourseExtractor, FetchedPage
from fairway.scraping.extractors.dynamic_extractor import DynamicExtractor
from fairway.scraping.extractors.rendering import (
    PageRenderer,
    PlaywrightRenderer,
    RenderedPage,
    RenderRequest,
)
from fairway.scraping.extractors.static_extractor import StaticExtractor, parse_retry_after

__all__ = [
    "CourseExtractor",
    "DynamicExtractor",
    "FetchedPage",
    "PageRenderer",
    "PlaywrightRenderer",
    "RenderRequest",
    "RenderedPage",
    "StaticExtractor",
    "parse_retry_after",
]
