"""Bearer credential lifecycle: expiry tracking, refresh and revoke."""

import logging
import time
from collections.abc import Callable

from core.errors.exceptions import ConfigError, IdentityError
from core.oauth2.identity import IdentityClient
from core.oauth2.models import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    IDP_REVOKE_URL,
    IDP_TOKEN_URL,
    Credential,
    decode_jwt_expiration,
)
from core.resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

RefreshListener = Callable[[Credential], None]


class CredentialManager:
    """
    Owns one bearer credential and keeps it alive.

    The credential is mutated in place on every refresh. Two independent
    schedulers sharing one manager must serialize their calls externally;
    the manager does not lock.

    Usage:
        creds = await CredentialManager.create(
            client_id="...",
            client_secret="...",
            access_token="eyJ...",
            refresh_token="...",
        )

        if await creds.auto_refresh():
            headers = {"Authorization": f"Bearer {creds.current_access_token()}"}
    """

    def __init__(
        self,
        credential: Credential,
        identity: IdentityClient | None = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ):
        """
        Args:
            credential: Credential state to manage
            identity: Identity provider client (built from the credential URLs if omitted)
            clock: Wall clock returning epoch seconds
            logger: Logger to report through (module logger if omitted)
        """
        if not credential.client_id or not credential.client_secret:
            raise ConfigError("client_id and client_secret are required")

        self._credential = credential
        self._identity = identity or IdentityClient(
            token_url=credential.idp_token_url,
            revoke_url=credential.idp_revoke_url,
        )
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._listeners: list[RefreshListener] = []

    @classmethod
    async def create(
        cls,
        client_id: str,
        client_secret: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        code: str | None = None,
        redirect_uri: str | None = None,
        idp_token_url: str | None = None,
        idp_revoke_url: str | None = None,
        retry: RetryConfig | None = None,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> "CredentialManager":
        """
        Build a manager from an existing token pair or a one-time code.

        - access_token + refresh_token: no I/O, expiry read from the JWT
        - refresh_token only: a fresh access token is requested immediately
        - code + redirect_uri: authorization_code grant

        Raises:
            ConfigError: Neither refresh_token nor code, or code without redirect_uri
            IdentityError: Identity provider rejected the request
            ParserError: Identity provider response was malformed
        """
        token_url = idp_token_url or IDP_TOKEN_URL
        revoke_url = idp_revoke_url or IDP_REVOKE_URL

        if not (refresh_token or code):
            raise ConfigError("Invalid Credentials (code or refresh token missing)")

        if refresh_token and access_token:
            credential = Credential(
                client_id=client_id,
                client_secret=client_secret,
                access_token=access_token,
                refresh_token=refresh_token,
                valid_until=decode_jwt_expiration(access_token),
                idp_token_url=token_url,
                idp_revoke_url=revoke_url,
            )
            return cls(credential, clock=clock, logger=logger)

        identity = IdentityClient(token_url=token_url, revoke_url=revoke_url, retry=retry)
        try:
            if refresh_token:
                tk = await identity.refresh_tokens(client_id, client_secret, refresh_token)
                new_refresh = tk.refresh_token or refresh_token
            elif redirect_uri:
                tk = await identity.fetch_tokens(client_id, client_secret, code, redirect_uri)
                if not tk.refresh_token:
                    raise IdentityError("Missing refresh_token in the response")
                new_refresh = tk.refresh_token
            else:
                raise ConfigError("Invalid Credentials (code or redirect_uri missing)")
        except BaseException:
            await identity.close()
            raise

        credential = Credential(
            client_id=client_id,
            client_secret=client_secret,
            access_token=tk.access_token,
            refresh_token=new_refresh,
            valid_until=int(clock()) + tk.expires_in,
            idp_token_url=token_url,
            idp_revoke_url=revoke_url,
        )
        return cls(credential, identity=identity, clock=clock, logger=logger)

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def expiration(self) -> int:
        """UNIX timestamp of the current access token expiration."""
        return self._credential.valid_until

    def current_access_token(self) -> str:
        return self._credential.access_token

    def is_near_expiry(self) -> bool:
        return self._credential.is_near_expiry(
            now=self._clock(), buffer_seconds=DEFAULT_REFRESH_BUFFER_SECONDS
        )

    def add_refresh_listener(self, listener: RefreshListener) -> None:
        """Register a callback invoked with the credential after each refresh."""
        self._listeners.append(listener)

    async def refresh_access_token(self) -> None:
        """
        Exchange the refresh token for a new access token.

        Raises:
            IdentityError: Non-2xx from the identity provider
            ParserError: Malformed identity provider response
        """
        cred = self._credential
        tk = await self._identity.refresh_tokens(
            cred.client_id, cred.client_secret, cred.refresh_token
        )
        cred.access_token = tk.access_token
        cred.valid_until = int(self._clock()) + tk.expires_in
        if tk.refresh_token:
            cred.refresh_token = tk.refresh_token

        self._logger.info(
            "Access token refreshed",
            extra={"valid_until": cred.valid_until},
        )

        for listener in list(self._listeners):
            try:
                listener(cred)
            except Exception as e:
                self._logger.warning(
                    "Error in refresh listener: %s",
                    str(e)[:100],
                    extra={"callback_error": str(e)[:100]},
                )

    async def auto_refresh(self) -> bool:
        """
        Refresh the access token when it is close to expiry.

        Never raises. A False return means "proceed with the current, possibly
        stale, token"; the next API call surfaces the real failure.

        Returns:
            True only when the token expiration actually advanced
        """
        if not self.is_near_expiry():
            return False

        previous = self._credential.valid_until
        self._logger.info("Attempt to auto-refresh the access token")
        try:
            await self.refresh_access_token()
        except Exception as e:
            self._logger.warning(
                "Failed to auto-refresh the access token",
                extra={"error_type": type(e).__name__, "error_message": str(e)[:200]},
            )
            return False

        return self._credential.valid_until > previous

    async def revoke_tokens(self) -> None:
        """
        Revoke the refresh token server-side.

        Raises:
            ConfigError: No refresh token is held
            IdentityError: Non-2xx from the revoke endpoint
        """
        cred = self._credential
        if not cred.refresh_token:
            raise ConfigError("No valid refresh token for revoke operation")
        await self._identity.revoke(cred.client_id, cred.client_secret, cred.refresh_token)

    async def close(self) -> None:
        await self._identity.close()

    async def __aenter__(self) -> "CredentialManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["CredentialManager", "RefreshListener"]
