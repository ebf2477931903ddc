"""Tests for ResilientTransport."""

import json

import aiohttp
import pytest

from core.errors.exceptions import ApplicationFrameworkError, ConfigError, ParserError
from core.resilience.retry import RetryConfig
from eventfeed.stats import FeedStats
from eventfeed.transport import ResilientTransport
from support import FakeTokenSource, json_response, mock_session, text_response

BASE_URL = "https://api.example.com/"
NO_DELAY = RetryConfig(max_attempts=3, delay=0)


def _transport(session, credentials=None, **kwargs) -> ResilientTransport:
    return ResilientTransport(
        base_url=BASE_URL,
        credentials=credentials or FakeTokenSource(),
        retry=NO_DELAY,
        session=session,
        **kwargs,
    )


def _sent(session, index: int = 0):
    return session.request.call_args_list[index]


class TestConstruction:
    def test_rejects_non_http_entry_point(self):
        with pytest.raises(ConfigError, match="http"):
            ResilientTransport(base_url="ftp://x", credentials=FakeTokenSource())

    def test_headers(self):
        transport = _transport(mock_session())
        assert transport.headers == {
            "Authorization": "Bearer token-1",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def test_url_for(self):
        transport = _transport(mock_session())
        assert transport.base_url == "https://api.example.com"
        assert transport.url_for("/a/b") == "https://api.example.com/a/b"
        assert transport.url_for("a") == "https://api.example.com/a"
        assert transport.url_for("") == "https://api.example.com"


class TestRequest:
    async def test_decodes_json(self):
        session = mock_session(json_response(200, [{"logType": "traffic"}]))
        transport = _transport(session)

        body = await transport.post("/poll", {"pollTimeout": 1})

        assert body == [{"logType": "traffic"}]
        call = _sent(session)
        assert call.args == ("POST", "https://api.example.com/poll")
        assert json.loads(call.kwargs["data"]) == {"pollTimeout": 1}
        assert call.kwargs["headers"]["Authorization"] == "Bearer token-1"

    async def test_empty_body_is_none(self):
        transport = _transport(mock_session(text_response(200, "")))
        assert await transport.get("/filters") is None

    async def test_empty_error_body_is_none(self):
        transport = _transport(mock_session(text_response(502, "")))
        assert await transport.post("/ack") is None

    async def test_invalid_json(self):
        transport = _transport(mock_session(text_response(200, "<html>")))
        with pytest.raises(ParserError, match="Invalid JSON"):
            await transport.get("/filters")

    async def test_invalid_json_on_error_status(self):
        transport = _transport(mock_session(text_response(500, "Internal error")))
        with pytest.raises(ParserError):
            await transport.get("/filters")

    async def test_error_status_carries_body(self):
        error_body = {"errorCode": "E42", "errorMessage": "channel not found"}
        transport = _transport(mock_session(json_response(404, error_body)))

        with pytest.raises(ApplicationFrameworkError) as exc_info:
            await transport.get("/channels/x")

        assert exc_info.value.status == 404
        assert exc_info.value.body == error_body
        assert exc_info.value.error_code == "E42"
        assert exc_info.value.url == "https://api.example.com/channels/x"

    async def test_error_status_not_retried(self):
        session = mock_session(json_response(503, {"error": "busy"}), json_response(200, {}))
        transport = _transport(session)
        with pytest.raises(ApplicationFrameworkError):
            await transport.get("/x")
        assert session.request.call_count == 1

    async def test_connection_error_retried(self):
        session = mock_session(
            aiohttp.ClientConnectionError("reset"),
            json_response(200, {"ok": True}),
        )
        stats = FeedStats()
        transport = _transport(session, stats=stats)

        assert await transport.get("/x") == {"ok": True}
        assert session.request.call_count == 2
        assert stats.api_transactions == 1

    async def test_retries_exhausted_reraise(self):
        session = mock_session(*[TimeoutError()] * 3)
        stats = FeedStats()
        transport = _transport(session, stats=stats)

        with pytest.raises(TimeoutError):
            await transport.get("/x")
        assert session.request.call_count == 3
        assert stats.api_transactions == 0

    async def test_counts_one_transaction_per_call(self):
        stats = FeedStats()
        transport = _transport(
            mock_session(json_response(200, {}), text_response(200, "")), stats=stats
        )
        await transport.get("/a")
        await transport.post("/b")
        assert stats.api_transactions == 2

    async def test_timeout_per_request(self):
        session = mock_session(json_response(200, {}), json_response(200, {}))
        transport = _transport(session, timeout=10)

        await transport.get("/a")
        await transport.post("/b", timeout=50)

        assert _sent(session, 0).kwargs["timeout"].total == 10
        assert _sent(session, 1).kwargs["timeout"].total == 50

    async def test_void_operation_keeps_last_response(self):
        transport = _transport(mock_session(json_response(200, {"status": "ok"})))
        assert await transport.void_operation("/ack") is None
        assert transport.last_response == {"status": "ok"}


class TestCredentials:
    async def test_auto_refresh_rebuilds_headers(self):
        credentials = FakeTokenSource()
        credentials.refresh_on_next_call = True
        session = mock_session(json_response(200, {}))
        transport = _transport(session, credentials=credentials)

        await transport.get("/x")

        assert _sent(session).kwargs["headers"]["Authorization"] == "Bearer token-1-refreshed"
        assert transport.headers["Authorization"] == "Bearer token-1-refreshed"

    async def test_auto_refresh_disabled(self):
        credentials = FakeTokenSource()
        transport = _transport(mock_session(json_response(200, {})), credentials, auto_refresh=False)
        await transport.get("/x")
        assert credentials.auto_refresh_calls == 0

    async def test_forced_refresh(self):
        credentials = FakeTokenSource()
        transport = _transport(mock_session(), credentials)
        await transport.refresh()
        assert credentials.forced_refreshes == 1
        assert transport.headers["Authorization"] == "Bearer token-1-forced"


class TestSessionLifecycle:
    async def test_injected_session_not_closed(self):
        session = mock_session()
        transport = _transport(session)
        await transport.close()
        session.close.assert_not_awaited()

    async def test_owned_session(self):
        transport = ResilientTransport(base_url=BASE_URL, credentials=FakeTokenSource())
        async with transport:
            assert isinstance(transport._session, aiohttp.ClientSession)
        assert transport._session is None
