"""
Rendered-page extractor for sites that build content client-side.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.errors import FetchError
from fairway.scraping.extractors.base import CourseExtractor, FetchedPage, _utcnow
from fairway.scraping.extractors.rendering import PageRenderer, PlaywrightRenderer, RenderRequest
from fairway.scraping.types import ScrapeOptions, ScrapeTarget

UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class DynamicExtractor(CourseExtractor):
    method = "dynamic"

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        renderer: PageRenderer | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(settings=settings, clock=clock, now=now)
        self.renderer = renderer or PlaywrightRenderer(max_browsers=settings.max_browsers)

    def fetch_page(self, target: ScrapeTarget, options: ScrapeOptions) -> FetchedPage:
        rendered = self.renderer.render(
            RenderRequest(
                url=target.url,
                timeout_seconds=self.resolve_timeout(options),
                user_agent=self.resolve_user_agent(options),
                headers=dict(options.headers),
                wait_for_selector=options.wait_for_selector,
                wait_time=options.wait_time,
                screenshot_path=self._screenshot_path(target) if options.screenshots else None,
            )
        )
        if rendered.status_code >= 400:
            raise FetchError(
                f"HTTP {rendered.status_code} while rendering",
                url=target.url,
                status_code=rendered.status_code,
            )

        return FetchedPage(
            markup=rendered.html,
            final_url=rendered.final_url or target.url,
            status_code=rendered.status_code,
            redirects=rendered.redirects,
            response_size=len(rendered.html.encode("utf-8")),
            resources_loaded=rendered.resources_loaded,
            screenshots=[rendered.screenshot_path] if rendered.screenshot_path else [],
        )

    def _screenshot_path(self, target: ScrapeTarget) -> str:
        folder = UNSAFE_PATH_CHARS.sub("-", target.id).strip("-") or "target"
        stamp = self._now().strftime("%Y%m%dT%H%M%S%f")
        return str(Path(self.settings.screenshot_dir) / folder / f"{stamp}.png")

    def close(self) -> None:
        self.renderer.close()
