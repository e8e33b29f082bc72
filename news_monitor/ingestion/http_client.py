"""
HTTP infrastructure layer with retry logic.

Provides:
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with automatic retry

This layer separates HTTP concerns (retries, backoff, timeouts) from
domain logic (feed parsing, article analysis).
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 2
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration for a given retry attempt.

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = self.base_delay * (2**attempt)
        delay = min(delay, self.max_backoff_seconds)
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter

    def is_retryable_status(self, status_code: int) -> bool:
        """
        Check if an HTTP status code should trigger a retry.

        Retryable status codes: 429, 500, 502, 503, 504.
        """
        return status_code in {429, 500, 502, 503, 504}

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Check if an exception (timeout, connect or read error) should trigger a retry."""
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.ConnectError,
                httpx.ReadError,
            ),
        )


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Features:
    - Exponential backoff with jitter on retryable errors
    - Automatic retry on 429, 5xx status codes
    - Automatic retry on timeout/connection errors
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_retries=0), timeout=10.0) as client:
            response = await client.get("https://example.com/feed")
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 20.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            headers: Default headers sent with every request.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._headers = dict(headers) if headers else {}
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Args:
            url: Request URL (a feed location for FeedClient)
            params: Query parameters
            headers: Per-request headers merged over the client defaults

        Returns:
            The first response with status below 400

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform POST request with retry logic.

        Args:
            url: Request URL (the analysis or notification endpoint)
            json_body: Payload serialized as JSON
            headers: Per-request headers, e.g. Authorization

        Returns:
            The first response with status below 400

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry(
            "POST", url, headers=headers, json_body=json_body
        )

    def _retry_delay(self, response: httpx.Response | None, attempt: int) -> float:
        """
        Backoff before the next attempt.

        A numeric Retry-After header wins over the exponential schedule
        but is still capped at max_backoff_seconds.

        Args:
            response: The retryable response, or None after a transport error
            attempt: The attempt that just failed (0-indexed)

        Returns:
            Seconds to sleep
        """
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after is not None:
                try:
                    return min(float(retry_after), self.retry_config.max_backoff_seconds)
                except ValueError:
                    pass
        return self.retry_config.calculate_backoff(attempt)

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Execute HTTP request with retry logic.

        Retries 429/5xx responses and timeout, connect and read errors with
        backoff. Everything else, including malformed URLs, fails at once
        as HTTPClientError.
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        last_status_code: int | None = None

        for attempt in range(attempts):
            final = attempt == attempts - 1
            try:
                response = await self._client.request(
                    method, url, params=params, headers=headers, json=json_body,
                )
            except httpx.InvalidURL as e:
                # Not an httpx.HTTPError subclass
                raise HTTPClientError(f"Invalid URL {url!r}: {e}") from e
            except httpx.HTTPError as e:
                if not self.retry_config.is_retryable_exception(e):
                    raise HTTPClientError(f"Request to {url} failed: {e}") from e
                if final:
                    raise HTTPClientError(
                        f"Request failed after {attempt + 1} attempts: {e}",
                        status_code=last_status_code,
                    ) from e
                backoff = self._retry_delay(None, attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, attempt {attempt + 1}/{attempts}, "
                    f"backing off {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
                continue

            status = response.status_code
            if status < 400:
                return response

            if not self.retry_config.is_retryable_status(status):
                raise HTTPClientError(
                    f"Request failed with status {status}",
                    status_code=status,
                    response_body=response.text,
                )

            last_status_code = status
            if final:
                error_cls = RateLimitError if status == 429 else HTTPClientError
                label = "Rate limit exceeded for" if status == 429 else f"Status {status} from"
                raise error_cls(
                    f"{label} {url} after {attempt + 1} attempts",
                    status_code=status,
                    response_body=response.text,
                )

            backoff = self._retry_delay(response, attempt)
            logger.warning(
                f"Status {status} from {url}, attempt {attempt + 1}/{attempts}, "
                f"backing off {backoff:.2f}s"
            )
            await asyncio.sleep(backoff)

        raise HTTPClientError(
            f"Request failed after {attempts} attempts", status_code=last_status_code,
        )
