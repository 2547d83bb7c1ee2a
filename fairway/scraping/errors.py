"""
Scraping failure types and their classification into ScrapingError values.
"""

from __future__ import annotations

import requests

from fairway.scraping.types import ScrapingError

TIMEOUT_CODE = "timeout"
CONNECTION_CODE = "connection"


class ScrapingFailure(Exception):
    """
    Base class for failures raised while fetching or extracting a page.
    """

    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url


class FetchError(ScrapingFailure):
    """
    Transport-level failure or non-success HTTP status.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: int | None = None,
        code: str | None = None,
        retry_after: float | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.code = code
        self.retry_after = retry_after
        self.retryable = retryable


class FetchTimeout(FetchError):
    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message, url=url, code=TIMEOUT_CODE)


class RenderError(FetchError):
    """
    Browser navigation or rendering failure.
    """


class ExtractionError(ScrapingFailure):
    """
    Content could not be parsed into course facts.
    """


def classify_exception(exc: BaseException, url: str) -> ScrapingError:
    """
    Map a raised exception onto the error taxonomy.

    Timeouts, connection failures, 5xx and 429 are retryable; client errors,
    parse failures and anything unrecognised are not.
    """

    if isinstance(exc, FetchTimeout):
        return ScrapingError(
            type="network",
            code=TIMEOUT_CODE,
            message=str(exc) or "Request timeout",
            url=url,
            retryable=True,
        )
    if isinstance(exc, FetchError):
        return _classify_status(exc, url)
    if isinstance(exc, requests.Timeout):
        return ScrapingError(
            type="network",
            code=TIMEOUT_CODE,
            message=f"Request timeout: {exc}",
            url=url,
            retryable=True,
        )
    if isinstance(exc, requests.RequestException):
        return ScrapingError(
            type="network",
            code=CONNECTION_CODE,
            message=f"Request failed: {exc}",
            url=url,
            retryable=True,
        )
    if isinstance(exc, ExtractionError):
        return ScrapingError(
            type="parsing",
            code="parse_failed",
            message=str(exc),
            url=url,
            retryable=False,
        )
    return ScrapingError(
        type="unknown",
        code=type(exc).__name__,
        message=str(exc) or type(exc).__name__,
        url=url,
        retryable=False,
    )


def robots_disallowed_error(url: str, reason: str | None) -> ScrapingError:
    return ScrapingError(
        type="robots-disallowed",
        code="robots_disallowed",
        message=reason or "Disallowed by robots.txt",
        url=url,
        retryable=False,
    )


def circuit_open_error(url: str) -> ScrapingError:
    return ScrapingError(
        type="network",
        code="circuit_open",
        message="Origin circuit is open after repeated failures; request not sent",
        url=url,
        retryable=True,
    )


def _classify_status(exc: FetchError, url: str) -> ScrapingError:
    status_code = exc.status_code
    if status_code == 429:
        return ScrapingError(
            type="rate-limited",
            code="429",
            message=str(exc),
            url=url,
            status_code=status_code,
            retryable=True,
            retry_after=exc.retry_after,
        )
    if status_code is not None and 400 <= status_code < 500:
        return ScrapingError(
            type="network",
            code=str(status_code),
            message=str(exc),
            url=url,
            status_code=status_code,
            retryable=False,
        )
    return ScrapingError(
        type="network",
        code=exc.code or (str(status_code) if status_code is not None else CONNECTION_CODE),
        message=str(exc),
        url=url,
        status_code=status_code,
        retryable=True if exc.retryable is None else exc.retryable,
    )
