"""
HTML parsing layer exports.
"""

from fairway.scraping.parsing.html_parsers import CourseFactParser, PageExtraction, resolve_url

__all__ = ["CourseFactParser", "PageExtraction", "resolve_url"]
