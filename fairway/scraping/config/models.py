"""
Scraping configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; GolfCourseBot/1.0; +https://example.com/bot)"


@dataclass(frozen=True)
class ScrapingSettings:
    """
    Runtime settings for the course scraping engine.
    """

    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 30.0
    max_redirects: int = 5
    max_concurrency: int = 3
    max_queue_size: int = 100
    max_attempts: int = 3
    backoff_initial_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 60.0
    default_crawl_delay_seconds: float = 2.0
    robots_cache_ttl_seconds: float = 24 * 60 * 60
    robots_timeout_seconds: float = 10.0
    allow_when_robots_unreachable: bool = True
    dynamic_confidence_threshold: int = 30
    enable_dynamic: bool = True
    max_browsers: int = 3
    circuit_failure_threshold: int = 5
    circuit_cooldown_seconds: float = 300.0
    screenshot_dir: str = "media/screenshots"
    targets_path: str = "config/targets.json"
