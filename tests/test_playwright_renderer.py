"""
tests/test_playwright_renderer.py

Pytest unit tests for PlaywrightRenderer with Playwright replaced by fakes.

Coverage
--------
- Queued renders are timed from pickup, not from submission
- Renders run in parallel across the browser pool
- One deadline spans navigation, network idle and settling
- Browser launch failure fails jobs promptly
"""

from __future__ import annotations

import threading
import time

import pytest
from playwright.sync_api import Error as PlaywrightError

from fairway.scraping.errors import FetchTimeout, RenderError
from fairway.scraping.extractors import rendering
from fairway.scraping.extractors.rendering import PlaywrightRenderer, RenderedPage, RenderRequest


class FakeBrowser:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self, launches: list[FakeBrowser], error: Exception | None = None) -> None:
        self.launches = launches
        self.error = error
        self.chromium = self

    def launch(self, **kwargs) -> FakeBrowser:
        if self.error is not None:
            raise self.error
        browser = FakeBrowser()
        self.launches.append(browser)
        return browser

    def __enter__(self) -> FakePlaywright:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


@pytest.fixture()
def launches(monkeypatch: pytest.MonkeyPatch) -> list[FakeBrowser]:
    launched: list[FakeBrowser] = []
    monkeypatch.setattr(rendering, "sync_playwright", lambda: FakePlaywright(launched))
    return launched


def _sleepy_render(seconds: float):
    def render_one(self, browser, request: RenderRequest, deadline: float) -> RenderedPage:
        time.sleep(seconds)
        return RenderedPage(html="<html></html>", final_url=request.url, status_code=200)

    return render_one


def _request(timeout: float = 0.5) -> RenderRequest:
    return RenderRequest(url="https://club.example/", timeout_seconds=timeout, user_agent="TestBot/1.0")


def _render_concurrently(renderer: PlaywrightRenderer, count: int, timeout: float) -> list[str]:
    outcomes: list[str] = []
    lock = threading.Lock()

    def run() -> None:
        try:
            renderer.render(_request(timeout))
            outcome = "ok"
        except Exception as exc:  # noqa: BLE001
            outcome = type(exc).__name__
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=run) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return outcomes


# ---------------------------------------------------------------------------
# Pool behaviour
# ---------------------------------------------------------------------------


class TestRenderPool:
    def test_queued_renders_are_timed_from_pickup(
        self,
        launches: list[FakeBrowser],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(PlaywrightRenderer, "_render_one", _sleepy_render(0.3))
        renderer = PlaywrightRenderer(max_browsers=1, result_grace_seconds=0.2)

        outcomes = _render_concurrently(renderer, count=5, timeout=0.5)
        renderer.close()

        assert outcomes == ["ok"] * 5
        assert len(launches) == 1

    def test_renders_run_in_parallel(
        self,
        launches: list[FakeBrowser],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(PlaywrightRenderer, "_render_one", _sleepy_render(0.5))
        renderer = PlaywrightRenderer(max_browsers=3)

        started = time.monotonic()
        outcomes = _render_concurrently(renderer, count=3, timeout=2.0)
        elapsed = time.monotonic() - started
        renderer.close()

        assert outcomes == ["ok"] * 3
        assert len(launches) == 3
        assert elapsed < 1.2
        assert all(browser.closed for browser in launches)

    def test_launch_failure_fails_render(self, monkeypatch: pytest.MonkeyPatch) -> None:
        broken = FakePlaywright([], error=PlaywrightError("Executable doesn't exist"))
        monkeypatch.setattr(rendering, "sync_playwright", lambda: broken)
        renderer = PlaywrightRenderer(max_browsers=1)

        started = time.monotonic()
        with pytest.raises(RenderError):
            renderer.render(_request(timeout=5.0))
        renderer.close()

        assert time.monotonic() - started < 2.0

    def test_closed_renderer_rejects_work(self, launches: list[FakeBrowser]) -> None:
        renderer = PlaywrightRenderer(max_browsers=1)
        renderer.close()
        with pytest.raises(RenderError):
            renderer.render(_request())


# ---------------------------------------------------------------------------
# Deadline across stages
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeRequestInfo:
    redirected_from = None


class FakeNavigation:
    status = 200
    request = FakeRequestInfo()


class FakePage:
    def __init__(self, clock: FakeClock, goto_seconds: float) -> None:
        self.clock = clock
        self.goto_seconds = goto_seconds
        self.timeouts: dict[str, float] = {}
        self.url = "https://club.example/"

    def set_default_timeout(self, timeout: float) -> None:
        self.timeouts["default"] = timeout

    def route(self, pattern: str, handler) -> None:
        pass

    def goto(self, url: str, *, wait_until: str, timeout: float) -> FakeNavigation:
        self.timeouts["goto"] = timeout
        self.clock.now += self.goto_seconds
        return FakeNavigation()

    def wait_for_selector(self, selector: str, *, timeout: float) -> None:
        self.timeouts["selector"] = timeout

    def wait_for_load_state(self, state: str, *, timeout: float) -> None:
        self.timeouts["networkidle"] = timeout

    def wait_for_timeout(self, timeout: float) -> None:
        self.timeouts["settle"] = timeout

    def content(self) -> str:
        return "<html><h1>Club Golf Course</h1></html>"

    def evaluate(self, script: str) -> int:
        return 4


class FakeContext:
    def __init__(self, page: FakePage) -> None:
        self.page = page
        self.closed = False

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class StageBrowser:
    def __init__(self, page: FakePage) -> None:
        self.context = FakeContext(page)

    def new_context(self, **kwargs) -> FakeContext:
        return self.context


class TestRenderDeadline:
    def test_waits_share_one_budget(self) -> None:
        clock = FakeClock()
        page = FakePage(clock, goto_seconds=6.0)
        browser = StageBrowser(page)
        renderer = PlaywrightRenderer(clock=clock)

        rendered = renderer._render_one(browser, _request(timeout=10.0), clock() + 10.0)

        assert page.timeouts["goto"] == pytest.approx(10_000)
        assert page.timeouts["networkidle"] == pytest.approx(4_000)
        assert page.timeouts["settle"] == pytest.approx(2_000)
        assert rendered.resources_loaded == 4
        assert browser.context.closed is True

    def test_slow_navigation_skips_remaining_waits(self) -> None:
        clock = FakeClock()
        page = FakePage(clock, goto_seconds=10.0)
        browser = StageBrowser(page)
        renderer = PlaywrightRenderer(clock=clock)
        request = RenderRequest(
            url="https://club.example/",
            timeout_seconds=10.0,
            user_agent="TestBot/1.0",
            wait_for_selector=".tee-times",
        )

        rendered = renderer._render_one(browser, request, clock() + 10.0)

        assert "selector" not in page.timeouts
        assert "networkidle" not in page.timeouts
        assert "settle" not in page.timeouts
        assert rendered.status_code == 200

    def test_expired_deadline_times_out_before_navigation(self) -> None:
        clock = FakeClock()
        page = FakePage(clock, goto_seconds=0.0)
        renderer = PlaywrightRenderer(clock=clock)

        with pytest.raises(FetchTimeout):
            renderer._render_one(StageBrowser(page), _request(timeout=1.0), clock() - 0.1)

        assert "goto" not in page.timeouts
