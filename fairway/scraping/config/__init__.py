"""
Config helpers for course scraping.
"""

from fairway.scraping.config.loader import get_scraping_settings, load_scrape_targets
from fairway.scraping.config.models import ScrapingSettings

__all__ = [
    "ScrapingSettings",
    "get_scraping_settings",
    "load_scrape_targets",
]
