"""
Static HTML extractor backed by requests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import ReadTimeoutError

from fairway.scraping.config.models import ScrapingSettings
from fairway.scraping.errors import ExtractionError, FetchError, FetchTimeout
from fairway.scraping.extractors.base import CourseExtractor, FetchedPage, _utcnow
from fairway.scraping.types import ScrapeOptions, ScrapeTarget

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
}
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")
READ_SIZE = 4 * 1024
MIN_READ_TIMEOUT_SECONDS = 0.05
MAX_RESPONSE_BYTES = 10 * 1024 * 1024
MAX_CONNECT_TIMEOUT_SECONDS = 10.0


class StaticExtractor(CourseExtractor):
    """
    Fetches server-rendered HTML without executing scripts.

    The body is streamed against a monotonic deadline so slow-drip
    responses cannot outlive the configured timeout.
    """

    method = "static"

    def __init__(
        self,
        *,
        settings: ScrapingSettings,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(settings=settings, clock=clock, now=now)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.session.max_redirects = settings.max_redirects

    def fetch_page(self, target: ScrapeTarget, options: ScrapeOptions) -> FetchedPage:
        url = target.url
        timeout = self.resolve_timeout(options)
        headers = {
            **BROWSER_HEADERS,
            "User-Agent": self.resolve_user_agent(options),
            **options.headers,
        }
        deadline = self._clock() + timeout

        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=(min(MAX_CONNECT_TIMEOUT_SECONDS, timeout), timeout),
                allow_redirects=True,
                stream=True,
            )
        except requests.TooManyRedirects as exc:
            raise FetchError(
                f"Exceeded {self.settings.max_redirects} redirects",
                url=url,
                code="too_many_redirects",
                retryable=False,
            ) from exc
        except requests.Timeout as exc:
            raise FetchTimeout(f"Request timeout after {timeout:g}s", url=url) from exc
        except requests.RequestException as exc:
            raise FetchError(f"Request failed: {exc}", url=url, code="connection") from exc

        with response:
            if response.status_code >= 400:
                raise FetchError(
                    f"HTTP {response.status_code}: {response.reason or 'error'}",
                    url=url,
                    status_code=response.status_code,
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                )

            content_type = (response.headers.get("Content-Type") or "").lower()
            if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
                raise ExtractionError(f"Unsupported content type: {content_type}", url=url)

            body = self._read_body(response, deadline=deadline, url=url, timeout=timeout)
            markup: str | bytes = body
            if "charset=" in content_type and response.encoding:
                markup = body.decode(response.encoding, errors="replace")

            return FetchedPage(
                markup=markup,
                final_url=response.url or url,
                status_code=response.status_code,
                redirects=[item.url for item in response.history],
                response_size=len(body),
            )

    def _read_body(
        self,
        response: requests.Response,
        *,
        deadline: float,
        url: str,
        timeout: float,
    ) -> bytes:
        """
        Read the body in small pieces, never blocking past `deadline`.

        Each read returns as soon as any bytes arrive, and the socket read
        timeout is shrunk to the time left before every read.
        """

        raw = response.raw
        chunks: list[bytes] = []
        size = 0
        try:
            while True:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise FetchTimeout(f"Request timeout after {timeout:g}s", url=url)
                _limit_read_timeout(raw, remaining)
                chunk = raw.read1(READ_SIZE, decode_content=True)
                if not chunk:
                    break
                chunks.append(chunk)
                size += len(chunk)
                if size >= MAX_RESPONSE_BYTES:
                    logger.warning("Truncated response body url=%s bytes=%s", url, size)
                    break
        except ReadTimeoutError as exc:
            raise FetchTimeout(f"Request timeout after {timeout:g}s", url=url) from exc
        except (Urllib3HTTPError, OSError) as exc:
            raise FetchError(f"Failed reading response: {exc}", url=url, code="connection") from exc
        return b"".join(chunks)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a Retry-After header given either as seconds or an HTTP date.
    """

    if value is None or not value.strip():
        return None
    raw = value.strip()
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0.0, (moment - datetime.now(timezone.utc)).total_seconds())


def _limit_read_timeout(raw: object, seconds: float) -> None:
    # urllib3 re-applies the pool's read timeout on the next request.
    connection = getattr(raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        sock.settimeout(max(seconds, MIN_READ_TIMEOUT_SECONDS))
