"""Authenticated JSON transport with fixed-delay retry."""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from core.errors.exceptions import ApplicationFrameworkError, ConfigError, ParserError
from core.logging.context import get_log_context
from core.resilience.retry import RetryConfig, retrier
from core.types import TokenSource
from eventfeed.stats import FeedStats

DEFAULT_TIMEOUT_SECONDS = 30.0


class ResilientTransport:
    """
    Async JSON client for the data-plane API.

    Every call:
        1. gives the credential manager a chance to refresh (auto_refresh)
        2. runs the HTTP exchange through the fixed-delay retrier
        3. counts one API transaction
        4. decodes the body: empty -> None, invalid JSON -> ParserError,
           non-2xx -> ApplicationFrameworkError carrying the decoded body

    Only failures of the HTTP exchange itself (connection errors, timeouts)
    are retried. Error statuses are answers, not failures, and surface once.
    """

    def __init__(
        self,
        base_url: str,
        credentials: TokenSource,
        stats: FeedStats | None = None,
        retry: RetryConfig | None = None,
        auto_refresh: bool = True,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else ""
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(
                f"entry point must start with http:// or https://, got: {base_url!r}"
            )

        self.credentials = credentials
        self.stats = stats if stats is not None else FeedStats()
        self.retry = retry or RetryConfig()
        self.auto_refresh = auto_refresh
        self.timeout = timeout
        self.last_response: Any = None
        self._session = session
        self._owns_session = session is None
        self._logger = logger or logging.getLogger(__name__)
        self._headers = self._build_headers()

    async def __aenter__(self) -> "ResilientTransport":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.current_access_token()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def url_for(self, path: str) -> str:
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    async def refresh(self) -> None:
        """Force a credential refresh and rebuild the outbound headers."""
        await self.credentials.refresh_access_token()
        self._headers = self._build_headers()

    @staticmethod
    def _encode_body(body: Any) -> str | None:
        if body is None:
            return None
        if isinstance(body, (str, bytes)):
            return body
        return json.dumps(body)

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Perform one API call.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            body: JSON-serialisable payload (dict/list) or pre-encoded string
            timeout: Per-request timeout in seconds (transport default if None)

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            ParserError: Non-empty body that is not valid JSON
            ApplicationFrameworkError: Non-2xx status with a JSON body
            aiohttp.ClientError / TimeoutError: Retries exhausted
        """
        if self.auto_refresh and await self.credentials.auto_refresh():
            self._headers = self._build_headers()

        session = await self._ensure_session()
        url = self.url_for(path)
        data = self._encode_body(body)
        effective_timeout = timeout if timeout is not None else self.timeout
        client_timeout = aiohttp.ClientTimeout(total=effective_timeout)
        headers = dict(self._headers)

        async def attempt() -> tuple[int, str]:
            async with session.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=client_timeout,
            ) as response:
                return response.status, await response.text()

        start = asyncio.get_running_loop().time()
        status, text = await retrier(attempt, config=self.retry)
        duration_ms = (asyncio.get_running_loop().time() - start) * 1000
        self.stats.api_transactions += 1

        ctx = {k: v for k, v in get_log_context().items() if v}
        self._logger.debug(
            "API request completed",
            extra={
                **ctx,
                "http_method": method,
                "http_url": url,
                "http_status": status,
                "duration_ms": round(duration_ms, 1),
            },
        )

        if not text:
            # An empty body is a void answer whatever the status
            if not 200 <= status < 300:
                self._logger.warning(
                    "API request answered with an empty error body",
                    extra={"http_method": method, "http_url": url, "http_status": status},
                )
            return None

        try:
            decoded = json.loads(text)
        except ValueError as e:
            raise ParserError(
                f"Invalid JSON response from {method} {path} (HTTP {status})",
                cause=e,
                context={"http_status": status, "url": url},
            ) from e

        if not 200 <= status < 300:
            error = ApplicationFrameworkError(status, decoded, url=url)
            self._logger.warning(
                "API request failed",
                extra={
                    "http_method": method,
                    "http_url": url,
                    "http_status": status,
                    "error_category": error.category.value,
                    "error_code": error.error_code,
                },
            )
            raise error

        return decoded

    async def get(self, path: str, timeout: float | None = None) -> Any:
        return await self.request("GET", path, timeout=timeout)

    async def post(self, path: str, body: Any = None, timeout: float | None = None) -> Any:
        return await self.request("POST", path, body=body, timeout=timeout)

    async def put(self, path: str, body: Any = None, timeout: float | None = None) -> Any:
        return await self.request("PUT", path, body=body, timeout=timeout)

    async def delete(self, path: str, timeout: float | None = None) -> Any:
        return await self.request("DELETE", path, timeout=timeout)

    async def void_operation(self, path: str, body: Any = None, method: str = "POST") -> None:
        """
        Call an endpoint whose success carries no meaningful payload (ack,
        nack, flush). Whatever the service answered is kept in last_response.
        """
        self.last_response = await self.request(method, path, body=body)


__all__ = ["ResilientTransport", "DEFAULT_TIMEOUT_SECONDS"]
