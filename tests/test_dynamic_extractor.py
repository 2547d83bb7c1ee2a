"""
tests/test_dynamic_extractor.py

Pytest unit tests for DynamicExtractor using a fake PageRenderer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.errors import FetchTimeout, RenderError
from fairway.scraping.extractors import DynamicExtractor, RenderedPage, RenderRequest
from fairway.scraping.types import ScrapeOptions, ScrapeTarget

RENDERED_HTML = """
<html><body>
  <h1>Canyon Country Club</h1>
  <section class="course-overview">Designed by Robert Trent Jones and opened in 1958.</section>
  <div class="gallery"><img src="/media/one.jpg"><img src="/media/two.jpg"></div>
</body></html>
"""

TARGET = ScrapeTarget(
    id="canyon/cc",
    name="Canyon CC",
    url="https://directory.example/canyon",
    source_type="directory",
)


class FakeRenderer:
    def __init__(self, outcome: RenderedPage | Exception) -> None:
        self.outcome = outcome
        self.requests: list[RenderRequest] = []
        self.closed = 0

    def render(self, request: RenderRequest) -> RenderedPage:
        self.requests.append(request)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    def close(self) -> None:
        self.closed += 1


def _extractor(renderer: FakeRenderer, tmp_path: Path | None = None) -> DynamicExtractor:
    settings = ScrapingSettings(screenshot_dir=str(tmp_path or "media/screenshots"))
    return DynamicExtractor(
        settings=settings,
        renderer=renderer,
        now=lambda: datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    )


def test_rendered_dom_is_extracted_with_final_url() -> None:
    renderer = FakeRenderer(
        RenderedPage(
            html=RENDERED_HTML,
            final_url="https://directory.example/courses/canyon",
            status_code=200,
            redirects=["https://directory.example/canyon"],
            resources_loaded=14,
        )
    )

    result = _extractor(renderer).scrape_basic_info(TARGET)

    assert result.success is True
    assert result.metadata.method == "dynamic"
    assert result.metadata.resources_loaded == 14
    assert result.metadata.redirects == ["https://directory.example/canyon"]
    assert result.data.name == "Canyon Country Club"
    assert result.data.architect == "Robert Trent Jones"
    assert result.data.opening_year == 1958
    assert result.images.gallery == [
        "https://directory.example/media/one.jpg",
        "https://directory.example/media/two.jpg",
    ]


def test_render_request_carries_options(tmp_path: Path) -> None:
    renderer = FakeRenderer(RenderedPage(html=RENDERED_HTML, final_url=TARGET.url, status_code=200))
    options = ScrapeOptions(
        timeout=15,
        screenshots=True,
        wait_for_selector=".course-overview",
        wait_time=0.5,
        headers={"X-Test": "1"},
    )

    _extractor(renderer, tmp_path).scrape_basic_info(TARGET, options)
    request = renderer.requests[0]

    assert request.timeout_seconds == 15
    assert request.wait_for_selector == ".course-overview"
    assert request.wait_time == 0.5
    assert request.headers == {"X-Test": "1"}
    assert request.user_agent == ScrapingSettings().user_agent
    assert request.screenshot_path is not None
    assert Path(request.screenshot_path).parent == tmp_path / "canyon-cc"


def test_screenshots_are_off_by_default() -> None:
    renderer = FakeRenderer(RenderedPage(html=RENDERED_HTML, final_url=TARGET.url, status_code=200))

    result = _extractor(renderer).scrape_basic_info(TARGET)

    assert renderer.requests[0].screenshot_path is None
    assert result.metadata.screenshots == []


def test_render_timeout_is_retryable() -> None:
    renderer = FakeRenderer(FetchTimeout("Navigation timeout after 30s", url=TARGET.url))

    result = _extractor(renderer).scrape_basic_info(TARGET)

    assert result.success is False
    assert result.confidence == 0
    assert result.errors[0].type == "network"
    assert result.errors[0].code == "timeout"
    assert result.errors[0].retryable is True


def test_render_failure_is_classified() -> None:
    renderer = FakeRenderer(RenderError("net::ERR_NAME_NOT_RESOLVED", url=TARGET.url))

    error = _extractor(renderer).scrape_basic_info(TARGET).errors[0]

    assert error.type == "network"
    assert error.retryable is True


def test_client_status_from_browser_is_not_retryable() -> None:
    renderer = FakeRenderer(RenderedPage(html="<html></html>", final_url=TARGET.url, status_code=403))

    error = _extractor(renderer).scrape_basic_info(TARGET).errors[0]

    assert error.status_code == 403
    assert error.retryable is False


def test_close_releases_renderer() -> None:
    renderer = FakeRenderer(RenderedPage(html=RENDERED_HTML, final_url=TARGET.url, status_code=200))
    _extractor(renderer).close()
    assert renderer.closed == 1
