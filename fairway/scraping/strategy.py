"""
Static versus rendered fetch selection.
"""

from __future__ import annotations

from collections.abc import Callable

from fairway.scraping.types import ProcessingResult, ScrapeOptions, ScrapeTarget, ScrapingMethod

StrategySelector = Callable[[ScrapeTarget, ScrapeOptions], ScrapingMethod]


def select_strategy(target: ScrapeTarget, options: ScrapeOptions) -> ScrapingMethod:
    """
    Pick the first fetch method for a target.

    Directory listings are almost always client-rendered, so they skip the
    static attempt.
    """

    if options.javascript:
        return "dynamic"
    if target.source_type == "directory":
        return "dynamic"
    return "static"


def should_escalate(
    result: ProcessingResult,
    *,
    threshold: int,
    enabled: bool = True,
) -> bool:
    if not enabled or result.metadata.method != "static":
        return False
    return result.success and result.confidence < threshold


def better_result(first: ProcessingResult, second: ProcessingResult) -> ProcessingResult:
    if first.success != second.success:
        return first if first.success else second
    return second if second.confidence > first.confidence else first
