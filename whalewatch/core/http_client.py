"""Shared aiohttp client with retry logic and request metrics."""

import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from ..utils.config import get_config
from ..utils.logger import LoggerMixin
from ..utils.metrics import api_requests, api_request_duration
from .errors import UpstreamAPIError


class RetryableStatusError(Exception):
    """Raised for HTTP statuses worth retrying (429 and 5xx)."""

    def __init__(self, status: int):
        super().__init__(f"HTTP {status}")
        self.status = status


class BaseAPIClient(LoggerMixin):
    """
    Base class for third-party REST clients.

    Owns one aiohttp session, retries transient failures with exponential
    backoff and tracks request counts and latency per provider.
    """

    provider = "generic"

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.config = get_config()
        self.session = session
        self._owns_session = session is None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self.session:
            timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Perform a request and decode the JSON body.

        Args:
            method: HTTP method
            url: Absolute URL
            endpoint: Short endpoint label used for metrics
            params: Query parameters
            json: JSON request body
            headers: Extra request headers
            allow_not_found: Return None on HTTP 404 instead of raising

        Returns:
            Decoded JSON body, or None for an allowed 404

        Raises:
            UpstreamAPIError: the request failed after all retries
        """
        await self.initialize()

        try:
            return await self._send(
                method, url, endpoint, params, json, headers, allow_not_found
            )
        except RetryableStatusError as e:
            raise UpstreamAPIError(self.provider, f"HTTP {e.status} from {endpoint}", e.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamAPIError(self.provider, f"{endpoint}: {type(e).__name__} {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(
            (aiohttp.ClientError, asyncio.TimeoutError, RetryableStatusError)
        ),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        url: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        json: Any,
        headers: Optional[Dict[str, str]],
        allow_not_found: bool,
    ) -> Any:
        start = time.monotonic()

        try:
            async with self.session.request(
                method, url, params=params, json=json, headers=headers
            ) as response:
                status = response.status

                if status == 404 and allow_not_found:
                    api_requests.labels(provider=self.provider, endpoint=endpoint, status="not_found").inc()
                    return None

                if status == 429 or status >= 500:
                    api_requests.labels(provider=self.provider, endpoint=endpoint, status="retry").inc()
                    self.logger.warning(f"{self.provider} {endpoint} returned {status}, retrying")
                    raise RetryableStatusError(status)

                if status >= 400:
                    body = await response.text()
                    api_requests.labels(provider=self.provider, endpoint=endpoint, status="error").inc()
                    raise UpstreamAPIError(
                        self.provider, f"HTTP {status} from {endpoint}: {body[:200]}", status
                    )

                api_requests.labels(provider=self.provider, endpoint=endpoint, status="success").inc()
                return await response.json(content_type=None)
        finally:
            api_request_duration.labels(provider=self.provider).observe(time.monotonic() - start)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
