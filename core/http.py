"""
HTTP transport for the RxNorm and openFDA collaborators.

Wraps ``requests`` with a per-call timeout and bounded exponential backoff.
Only transient failures are retried: connection resets, timeouts and HTTP
429/503/504. Any other 4xx fails immediately.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from .errors import ExternalAPIError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})
INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 30.0


class _RetryableHTTPStatus(Exception):
    """Internal marker for a retryable non-2xx response."""

    def __init__(self, status: int, reason: str):
        self.status = status
        super().__init__(f"HTTP {status}: {reason}")


def is_retryable_error(error: BaseException) -> bool:
    """Return True if *error* is a transient transport failure."""
    if isinstance(error, _RetryableHTTPStatus):
        return True
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return False


class HTTPClient:
    """
    JSON-over-HTTP client with timeout and retry.

    Args:
        timeout_ms: Per-request timeout.
        max_retries: Total attempts (1 = no retry).
        session: Optional pre-configured ``requests.Session``.
        sleep: Backoff sleeper (injected in tests).
    """

    def __init__(
        self,
        *,
        timeout_ms: int = 10_000,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout_ms = timeout_ms
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "HTTPClient":
        return cls(timeout_ms=settings.api_timeout_ms, max_retries=settings.api_max_retries)

    def fetch_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        api_name: str = "External API",
    ) -> Any:
        """
        GET *url* and decode the JSON body.

        Raises:
            ExternalAPIError: non-retryable status, retries exhausted, or bad JSON.
        """
        last_error: Optional[BaseException] = None
        backoff = INITIAL_BACKOFF_SECONDS

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout_ms / 1000.0)
                if response.status_code >= 400:
                    if response.status_code in RETRYABLE_STATUS_CODES:
                        raise _RetryableHTTPStatus(response.status_code, response.reason or "")
                    raise ExternalAPIError(
                        api_name,
                        f"HTTP {response.status_code}: {response.reason or ''}".strip(),
                        http_status=response.status_code,
                    )
                try:
                    return response.json()
                except ValueError as e:
                    raise ExternalAPIError(api_name, "Response body is not valid JSON", cause=e)
            except ExternalAPIError:
                raise
            except Exception as e:
                last_error = e
                if not is_retryable_error(e):
                    break
                if attempt == self.max_retries:
                    break
                wait_time = min(backoff, MAX_BACKOFF_SECONDS)
                logger.warning(
                    f"{api_name} transient failure, retrying in {wait_time:.0f}s "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                self._sleep(wait_time)
                backoff *= 2

        http_status = getattr(last_error, "status", None)
        reason = str(last_error) if last_error else "Unknown error"
        raise ExternalAPIError(api_name, reason, http_status=http_status, cause=last_error)

    async def afetch_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        api_name: str = "External API",
    ) -> Any:
        """Async version of :meth:`fetch_json` (runs in a worker thread)."""
        return await asyncio.to_thread(self.fetch_json, url, params, api_name)

    def close(self) -> None:
        self.session.close()
