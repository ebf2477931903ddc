"""Identity provider client: token exchange, refresh and revoke calls."""

import asyncio
import json
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from core.errors.exceptions import IdentityError, ParserError
from core.oauth2.models import IDP_REVOKE_URL, IDP_TOKEN_URL, TokenResponse
from core.resilience.retry import RetryConfig, retrier

logger = logging.getLogger(__name__)

IDENTITY_TIMEOUT_SECONDS = 30

_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class IdentityClient:
    """
    Async client for the OAuth2 identity provider.

    All calls post JSON bodies. The HTTP exchange itself is retried with the
    fixed-delay retrier; HTTP error statuses are not retried and surface as
    IdentityError.
    """

    def __init__(
        self,
        token_url: str = IDP_TOKEN_URL,
        revoke_url: str = IDP_REVOKE_URL,
        retry: RetryConfig | None = None,
        timeout_seconds: float = IDENTITY_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ):
        self.token_url = token_url
        self.revoke_url = revoke_url
        self.retry = retry or RetryConfig()
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
        self._session = None

    async def _post(self, url: str, payload: dict[str, Any]) -> tuple[int, str]:
        session = await self._ensure_session()

        async def attempt() -> tuple[int, str]:
            async with session.post(
                url,
                data=json.dumps(payload),
                headers=_JSON_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                return response.status, await response.text()

        return await retrier(attempt, config=self.retry)

    async def _token_request(self, payload: dict[str, Any], operation: str) -> TokenResponse:
        status, text = await self._post(self.token_url, payload)

        if not 200 <= status < 300:
            logger.error(
                "Identity provider rejected %s operation",
                operation,
                extra={"http_status": status, "error": text[:200]},
            )
            raise IdentityError(
                f"HTTP Error from IDP {operation} operation {status}",
                status=status,
                context={"http_status": status},
            )

        try:
            body = json.loads(text)
        except ValueError as e:
            raise ParserError(f"Invalid JSON {operation} response: {e}", cause=e) from e

        try:
            token = TokenResponse.model_validate(body)
        except ValidationError as e:
            raise ParserError(
                f"Unparseable response received from IDP {operation} operation",
                cause=e,
            ) from e

        logger.info(
            "Authorization token successfully retrieved",
            extra={"operation": operation, "expires_in": token.expires_in},
        )
        return token

    async def refresh_tokens(
        self, client_id: str, client_secret: str, refresh_token: str
    ) -> TokenResponse:
        """Exchange a refresh token for a new access token."""
        return await self._token_request(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            "refresh",
        )

    async def fetch_tokens(
        self, client_id: str, client_secret: str, code: str, redirect_uri: str
    ) -> TokenResponse:
        """Exchange a one-time authorization code for a token set."""
        return await self._token_request(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
                "code": code,
            },
            "fetch",
        )

    async def revoke(self, client_id: str, client_secret: str, refresh_token: str) -> None:
        """Invalidate a refresh token. Any 2xx status is success."""
        status, text = await self._post(
            self.revoke_url,
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "token": refresh_token,
                "token_type_hint": "refresh_token",
            },
        )
        if not 200 <= status < 300:
            logger.error(
                "Identity provider rejected revoke operation",
                extra={"http_status": status, "error": text[:200]},
            )
            raise IdentityError(
                f"HTTP Error from IDP revoke operation {status}",
                status=status,
                context={"http_status": status},
            )
        logger.info("Authorization token successfully revoked")


__all__ = ["IdentityClient", "IDENTITY_TIMEOUT_SECONDS"]
