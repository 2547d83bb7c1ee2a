"""
Headless browser rendering for JavaScript-heavy course sites.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from playwright.sync_api import Browser, Page, Route, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from fairway.scraping.errors import FetchTimeout, RenderError
from fairway.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_RESOURCE_TYPES = frozenset({"stylesheet", "font", "media"})
DEFAULT_VIEWPORT = {"width": 1366, "height": 768}
SELECTOR_WAIT_SECONDS = 10.0
RESULT_GRACE_SECONDS = 5.0
SCREENSHOT_MIN_MS = 2000.0
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


@dataclass(frozen=True)
class RenderRequest:
    url: str
    timeout_seconds: float
    user_agent: str
    headers: dict[str, str] = field(default_factory=dict)
    wait_for_selector: str | None = None
    wait_time: float | None = None
    screenshot_path: str | None = None


@dataclass(frozen=True)
class RenderedPage:
    html: str
    final_url: str
    status_code: int
    redirects: list[str] = field(default_factory=list)
    resources_loaded: int = 0
    screenshot_path: str | None = None


@dataclass
class _RenderJob:
    request: RenderRequest
    future: Future = field(default_factory=Future)
    picked_up: threading.Event = field(default_factory=threading.Event)


class PageRenderer(Protocol):
    def render(self, request: RenderRequest) -> RenderedPage:
        ...

    def close(self) -> None:
        ...


class PlaywrightRenderer:
    """
    Renders pages on a small pool of Chromium instances.

    Playwright's sync API is bound to the thread that started it, so each
    browser has its own owner thread. Worker threads hand jobs to the pool
    through a queue. A render's timeout starts when an owner thread picks
    the job up, and one deadline covers navigation, waits and settling.
    """

    def __init__(
        self,
        *,
        max_browsers: int = 3,
        headless: bool = True,
        blocked_resource_types: frozenset[str] = DEFAULT_BLOCKED_RESOURCE_TYPES,
        settle_seconds: float = 2.0,
        queue_timeout_seconds: float = 120.0,
        result_grace_seconds: float = RESULT_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_browsers = max(1, max_browsers)
        self.headless = headless
        self.blocked_resource_types = blocked_resource_types
        self.settle_seconds = settle_seconds
        self.queue_timeout_seconds = queue_timeout_seconds
        self.result_grace_seconds = result_grace_seconds
        self._clock = clock
        self._jobs: queue.Queue[_RenderJob | None] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

    def render(self, request: RenderRequest) -> RenderedPage:
        job = _RenderJob(request=request)
        with self._lock:
            if self._closed:
                raise RenderError("Renderer is closed", url=request.url)
            self._ensure_started()
            self._jobs.put(job)

        if not job.picked_up.wait(timeout=self.queue_timeout_seconds) and job.future.cancel():
            raise FetchTimeout(
                f"No browser free after {self.queue_timeout_seconds:g}s",
                url=request.url,
            )
        try:
            return job.future.result(timeout=request.timeout_seconds + self.result_grace_seconds)
        except FutureTimeoutError as exc:
            raise FetchTimeout(
                f"Render timeout after {request.timeout_seconds:g}s",
                url=request.url,
            ) from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
            for _ in threads:
                self._jobs.put(None)
        for thread in threads:
            thread.join(timeout=30)

    def _ensure_started(self) -> None:
        if self._threads:
            return
        for index in range(self.max_browsers):
            thread = threading.Thread(
                target=self._run,
                name=f"playwright-renderer-{index + 1}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _run(self) -> None:
        # Chromium is launched only once this thread has work.
        job = self._jobs.get()
        if job is None:
            return
        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
                log_event(logger, logging.INFO, "browser_started", headless=self.headless)
                try:
                    self._serve(browser, job)
                finally:
                    browser.close()
                    log_event(logger, logging.INFO, "browser_closed")
        except PlaywrightError as exc:
            log_event(logger, logging.ERROR, "browser_launch_failed", error=str(exc))
            self._fail_pending(job, exc)

    def _serve(self, browser: Browser, job: _RenderJob) -> None:
        while True:
            self._execute(browser, job)
            next_job = self._jobs.get()
            if next_job is None:
                return
            job = next_job

    def _execute(self, browser: Browser, job: _RenderJob) -> None:
        if not job.future.set_running_or_notify_cancel():
            return
        job.picked_up.set()
        deadline = self._clock() + job.request.timeout_seconds
        try:
            job.future.set_result(self._render_one(browser, job.request, deadline))
        except Exception as exc:
            job.future.set_exception(exc)

    def _fail_pending(self, job: _RenderJob | None, cause: Exception) -> None:
        while job is not None:
            if not job.picked_up.is_set() and job.future.set_running_or_notify_cancel():
                job.future.set_exception(
                    RenderError(f"Browser unavailable: {cause}", url=job.request.url)
                )
            job.picked_up.set()
            job = self._jobs.get()

    def _remaining_ms(self, deadline: float) -> float:
        return max(0.0, (deadline - self._clock()) * 1000)

    def _render_one(self, browser: Browser, request: RenderRequest, deadline: float) -> RenderedPage:
        context = browser.new_context(
            user_agent=request.user_agent,
            viewport=DEFAULT_VIEWPORT,
            extra_http_headers=request.headers or None,
        )
        try:
            page = context.new_page()
            page.set_default_timeout(request.timeout_seconds * 1000)
            page.route("**/*", self._route_handler)

            budget_ms = self._remaining_ms(deadline)
            if budget_ms <= 0:
                raise FetchTimeout(
                    f"Navigation timeout after {request.timeout_seconds:g}s",
                    url=request.url,
                )
            try:
                response = page.goto(request.url, wait_until="domcontentloaded", timeout=budget_ms)
            except PlaywrightTimeoutError as exc:
                raise FetchTimeout(
                    f"Navigation timeout after {request.timeout_seconds:g}s",
                    url=request.url,
                ) from exc
            except PlaywrightError as exc:
                raise RenderError(f"Navigation failed: {exc}", url=request.url) from exc
            if response is None:
                raise RenderError("Navigation returned no response", url=request.url)

            self._wait_for_content(page, request, deadline)
            screenshot_path = self._take_screenshot(page, request, deadline)

            redirects: list[str] = []
            previous = response.request.redirected_from
            while previous is not None:
                redirects.insert(0, previous.url)
                previous = previous.redirected_from

            return RenderedPage(
                html=page.content(),
                final_url=page.url,
                status_code=response.status,
                redirects=redirects,
                resources_loaded=int(
                    page.evaluate("() => performance.getEntriesByType('resource').length")
                ),
                screenshot_path=screenshot_path,
            )
        finally:
            context.close()

    def _route_handler(self, route: Route) -> None:
        if route.request.resource_type in self.blocked_resource_types:
            route.abort()
        else:
            route.continue_()

    def _wait_for_content(self, page: Page, request: RenderRequest, deadline: float) -> None:
        if request.wait_for_selector:
            budget_ms = min(self._remaining_ms(deadline), SELECTOR_WAIT_SECONDS * 1000)
            if budget_ms > 0:
                try:
                    page.wait_for_selector(request.wait_for_selector, timeout=budget_ms)
                except PlaywrightTimeoutError:
                    log_event(
                        logger,
                        logging.WARNING,
                        "render_selector_missing",
                        url=request.url,
                        selector=request.wait_for_selector,
                    )

        budget_ms = self._remaining_ms(deadline)
        if budget_ms > 0:
            try:
                page.wait_for_load_state("networkidle", timeout=budget_ms)
            except PlaywrightTimeoutError:
                log_event(logger, logging.WARNING, "render_network_busy", url=request.url)

        settle_seconds = request.wait_time if request.wait_time is not None else self.settle_seconds
        settle_ms = min(settle_seconds * 1000, self._remaining_ms(deadline))
        if settle_ms > 0:
            page.wait_for_timeout(settle_ms)

    def _take_screenshot(self, page: Page, request: RenderRequest, deadline: float) -> str | None:
        if not request.screenshot_path:
            return None
        Path(request.screenshot_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            page.screenshot(
                path=request.screenshot_path,
                full_page=True,
                timeout=max(self._remaining_ms(deadline), SCREENSHOT_MIN_MS),
            )
        except PlaywrightTimeoutError:
            log_event(logger, logging.WARNING, "render_screenshot_skipped", url=request.url)
            return None
        return request.screenshot_path
