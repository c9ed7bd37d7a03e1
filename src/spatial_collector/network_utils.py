from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import urlparse

import requests

from spatial_collector.__version__ import __version__ as VERSION
from spatial_collector.config import RetryConfig, Timeouts
from spatial_collector.transfer import DownloadResult, http_download

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Earthdata downloads redirect through this host for Basic auth
EARTHDATA_LOGIN_HOST = "urs.earthdata.nasa.gov"


def build_user_agent(name: str = "spatial-collector", version: str = VERSION) -> str:
    """Build a default User-Agent string."""
    return f"{name}/{version}"


def _is_retryable_http_exception(exc: Exception, retry_on_429: bool = True) -> bool:
    """Check if an HTTP exception is retryable.

    Args:
        exc: The exception to check
        retry_on_429: Whether to retry on HTTP 429 Too Many Requests

    Returns:
        True if the exception is retryable
    """
    if isinstance(exc, requests.exceptions.HTTPError):
        status_code = exc.response.status_code if exc.response is not None else None
        if status_code is None:
            return False
        if status_code >= 500:
            return True
        return status_code == 429 and retry_on_429
    return isinstance(
        exc,
        (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
            requests.exceptions.ChunkedEncodingError,
            requests.exceptions.ContentDecodingError,
        ),
    )


def _with_retries(
    fn: Callable[[], T],
    *,
    max_attempts: int = 3,
    backoff_base: float = 2.0,
    backoff_max: float = 60.0,
    on_retry: Callable[[int, Exception], None] | None = None,
    retry_on_429: bool = True,
) -> T:
    """Execute a function with retry logic.

    Args:
        fn: The function to execute
        max_attempts: Maximum number of attempts
        backoff_base: Base for exponential backoff (seconds)
        backoff_max: Maximum backoff time (seconds)
        on_retry: Optional callback called on each retry with (attempt_num, exception)
        retry_on_429: Whether to retry on HTTP 429 Too Many Requests

    Returns:
        The result of fn()

    Raises:
        Exception: The last exception if all retries fail
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as exc:
            is_retryable = _is_retryable_http_exception(exc, retry_on_429=retry_on_429)
            if not is_retryable or attempt >= attempts - 1:
                raise
            if on_retry:
                on_retry(attempt + 1, exc)
            time.sleep(min(backoff_base**attempt, backoff_max))
    raise RuntimeError("unreachable")


class AuthPreservingSession(requests.Session):
    """Session that keeps Basic credentials across the Earthdata login redirect.

    ``requests`` drops the Authorization header whenever a redirect changes
    host. Earthdata-protected archives redirect to the login host and back, so
    the header is kept for hops to or from that host only.
    """

    def rebuild_auth(self, prepared_request: requests.PreparedRequest, response: requests.Response) -> None:
        headers = prepared_request.headers
        if "Authorization" in headers:
            original = urlparse(response.request.url).hostname
            redirect = urlparse(prepared_request.url).hostname
            if original != redirect and EARTHDATA_LOGIN_HOST not in {original, redirect}:
                del headers["Authorization"]


def _log_retry(url: str) -> Callable[[int, Exception], None]:
    def on_retry(attempt: int, exc: Exception) -> None:
        logger.debug("Retrying GET %s after attempt %d: %s", url, attempt, exc)

    return on_retry


class HttpClient:
    """HTTP access used by the pipeline.

    Metadata requests (checksums, item status) retry transient errors with
    backoff. ``download`` performs exactly one transfer attempt; retrying
    dataset transfers is the job of ``retry.RetryingDownloader``.
    """

    def __init__(
        self,
        *,
        timeouts: Timeouts | None = None,
        retry: RetryConfig | None = None,
        session: requests.Session | None = None,
        user_agent: str | None = None,
        backoff_base: float = 2.0,
    ) -> None:
        self.timeouts = timeouts or Timeouts()
        self.retry = retry or RetryConfig()
        self.backoff_base = backoff_base
        self._session = session or AuthPreservingSession()
        self._session.headers.setdefault("User-Agent", user_agent or build_user_agent())

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def _get(self, url: str, auth: tuple[str, str] | None) -> requests.Response:
        def _fetch() -> requests.Response:
            resp = self._session.get(url, auth=auth, timeout=self.timeouts.as_tuple())
            resp.raise_for_status()
            return resp

        return _with_retries(
            _fetch,
            max_attempts=self.retry.max_attempts,
            backoff_base=self.backoff_base,
            on_retry=_log_retry(url),
        )

    def get_text(self, url: str, auth: tuple[str, str] | None = None) -> str:
        resp = self._get(url, auth)
        resp.encoding = resp.encoding or "utf-8"
        return resp.text

    def get_json(self, url: str, auth: tuple[str, str] | None = None) -> Any:
        return self._get(url, auth).json()

    def download(self, url: str, out_path: Path, auth: tuple[str, str] | None = None) -> DownloadResult:
        return http_download(
            self._session, url, out_path, auth=auth, timeout=self.timeouts.as_tuple()
        )
