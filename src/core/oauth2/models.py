"""OAuth2 credential data models."""

import base64
import binascii
import json
import time
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors.exceptions import ConfigError

# Token refresh guard band (5 minutes before expiry)
DEFAULT_REFRESH_BUFFER_SECONDS = 300

IDP_TOKEN_URL = "https://api.paloaltonetworks.com/api/oauth2/RequestToken"
IDP_REVOKE_URL = "https://api.paloaltonetworks.com/api/oauth2/RevokeToken"


def decode_jwt_expiration(token: str) -> int:
    """
    Read the ``exp`` claim of a JWT access token.

    Args:
        token: Compact-serialized JWT (header.payload.signature)

    Returns:
        Expiration as UNIX epoch seconds

    Raises:
        ConfigError: If the token is not a three-segment JWT or the claim
            cannot be decoded
    """
    parts = token.split(".") if isinstance(token, str) else []
    if len(parts) != 3:
        raise ConfigError("invalid JWT Token")

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
        return int(claims["exp"])
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError, KeyError) as e:
        raise ConfigError(f"unable to decode JWT exp claim: {e}", cause=e) from e


@dataclass
class Credential:
    """
    Bearer credential state.

    Attributes:
        client_id: OAuth2 application client id
        client_secret: OAuth2 application client secret
        access_token: Current bearer token
        refresh_token: Long-lived token exchanged for new access tokens
        valid_until: Access token expiration (UNIX epoch seconds)
        idp_token_url: Identity provider token endpoint
        idp_revoke_url: Identity provider revoke endpoint
    """

    client_id: str
    client_secret: str
    access_token: str
    refresh_token: str
    valid_until: int
    idp_token_url: str = IDP_TOKEN_URL
    idp_revoke_url: str = IDP_REVOKE_URL

    def is_near_expiry(
        self,
        now: float | None = None,
        buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
    ) -> bool:
        """True when ``now + buffer_seconds > valid_until``."""
        now = time.time() if now is None else now
        return now + buffer_seconds > self.valid_until

    def remaining_lifetime(self, now: float | None = None) -> float:
        """Seconds before the access token expires (negative once expired)."""
        now = time.time() if now is None else now
        return self.valid_until - now

    def __repr__(self) -> str:
        return (
            f"Credential(client_id={self.client_id!r}, valid_until={self.valid_until}, "
            f"idp_token_url={self.idp_token_url!r})"
        )


class TokenResponse(BaseModel):
    """Identity provider token response body."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int
    refresh_token: str | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def _coerce_expires_in(cls, value):
        # The identity provider reports expires_in as a string
        if isinstance(value, str):
            return int(value.strip())
        return value


__all__ = [
    "Credential",
    "TokenResponse",
    "decode_jwt_expiration",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "IDP_TOKEN_URL",
    "IDP_REVOKE_URL",
]
