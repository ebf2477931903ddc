"""
OAuth2 bearer credential lifecycle.

Keeps one access token alive against the identity provider: expiry is read
from the JWT ``exp`` claim (or derived from ``expires_in`` after a refresh) and
the token is refreshed five minutes before it runs out.

Basic Usage:
    from core.oauth2 import CredentialManager

    creds = await CredentialManager.create(
        client_id=os.getenv("CLIENT_ID"),
        client_secret=os.getenv("CLIENT_SECRET"),
        refresh_token=os.getenv("REFRESH_TOKEN"),
    )

    await creds.auto_refresh()
    headers = {"Authorization": f"Bearer {creds.current_access_token()}"}
"""

from core.oauth2.identity import IDENTITY_TIMEOUT_SECONDS, IdentityClient
from core.oauth2.manager import CredentialManager, RefreshListener
from core.oauth2.models import (
    DEFAULT_REFRESH_BUFFER_SECONDS,
    IDP_REVOKE_URL,
    IDP_TOKEN_URL,
    Credential,
    TokenResponse,
    decode_jwt_expiration,
)

__all__ = [
    # Manager
    "CredentialManager",
    "RefreshListener",
    # Identity provider
    "IdentityClient",
    "IDENTITY_TIMEOUT_SECONDS",
    # Models
    "Credential",
    "TokenResponse",
    "decode_jwt_expiration",
    "DEFAULT_REFRESH_BUFFER_SECONDS",
    "IDP_TOKEN_URL",
    "IDP_REVOKE_URL",
]
