"""Shared test helpers: JWT builder, manual clock and aiohttp response mocks."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock


def make_jwt(exp: int, extra: dict | None = None) -> str:
    """Build an unsigned three-segment JWT carrying ``exp``."""

    def _segment(data: dict) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    header = _segment({"alg": "none", "typ": "JWT"})
    payload = _segment({"exp": exp, **(extra or {})})
    return f"{header}.{payload}.signature"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def text_response(status: int, text: str):
    """Create a mock async context manager for a response with a text body."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.text = AsyncMock(return_value=text)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def json_response(status: int, data) -> AsyncMock:
    return text_response(status, json.dumps(data))


def mock_session(*responses, method: str = "request"):
    """
    Create a mock aiohttp session whose ``method`` returns ``responses`` in
    order. Exceptions in ``responses`` are raised when reached.
    """
    session = MagicMock()
    session.closed = False
    setattr(session, method, MagicMock(side_effect=list(responses)))
    session.close = AsyncMock()
    return session


class FakeTokenSource:
    """In-memory stand-in for CredentialManager."""

    def __init__(self, token: str = "token-1"):
        self.token = token
        self.refresh_on_next_call = False
        self.auto_refresh_calls = 0
        self.forced_refreshes = 0

    def current_access_token(self) -> str:
        return self.token

    async def auto_refresh(self) -> bool:
        self.auto_refresh_calls += 1
        if self.refresh_on_next_call:
            self.refresh_on_next_call = False
            self.token = f"{self.token}-refreshed"
            return True
        return False

    async def refresh_access_token(self) -> None:
        self.forced_refreshes += 1
        self.token = f"{self.token}-forced"
