"""
fairway/scraping package marker.
"""

from fairway.scraping.circuit_breaker import CircuitBreaker
from fairway.scraping.orchestrator import HealthStatus, RequestOrchestrator
from fairway.scraping.robots import PolicyGate
from fairway.scraping.strategy import select_strategy
from fairway.scraping.types import (
    ProcessingResult,
    ScrapeOptions,
    ScrapeTarget,
    ScrapingError,
)

__all__ = [
    "CircuitBreaker",
    "HealthStatus",
    "PolicyGate",
    "ProcessingResult",
    "RequestOrchestrator",
    "ScrapeOptions",
    "ScrapeTarget",
    "ScrapingError",
    "select_strategy",
]
