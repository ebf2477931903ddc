"""Tests for the exception hierarchy and HTTP status classification."""

import pytest

from core.errors import (
    ApplicationFrameworkError,
    ConfigError,
    ErrorCategory,
    FeedError,
    IdentityError,
    ParserError,
    classify_http_status,
    is_feed_error,
)


class TestFeedError:
    def test_message_and_context(self):
        err = FeedError("boom", context={"k": "v"})
        assert err.message == "boom"
        assert err.context == {"k": "v"}
        assert err.cause is None

    def test_str_includes_kind_and_cause(self):
        cause = ValueError("bad value")
        err = ConfigError("invalid JWT Token", cause=cause)
        assert str(err) == "CONFIG: invalid JWT Token | Caused by: bad value"

    def test_default_context_is_empty_dict(self):
        assert FeedError("x").context == {}


class TestErrorKinds:
    @pytest.mark.parametrize(
        "exc_cls,kind,category",
        [
            (ConfigError, "CONFIG", ErrorCategory.PERMANENT),
            (ParserError, "PARSER", ErrorCategory.PERMANENT),
            (IdentityError, "IDENTITY", ErrorCategory.AUTH),
        ],
    )
    def test_kind_and_category(self, exc_cls, kind, category):
        err = exc_cls("msg")
        assert err.kind == kind
        assert err.category == category
        assert isinstance(err, FeedError)
        assert not err.is_retryable

    def test_identity_error_keeps_status(self):
        err = IdentityError("rejected", status=400)
        assert err.status == 400


class TestApplicationFrameworkError:
    def test_carries_parsed_body(self):
        body = {"errorCode": "E1003", "errorMessage": "Invalid channel"}
        err = ApplicationFrameworkError(400, body, url="https://api/x")
        assert err.status == 400
        assert err.body is body
        assert err.url == "https://api/x"
        assert err.error_code == "E1003"
        assert err.error_message == "Invalid channel"
        assert "HTTP 400" in str(err)

    def test_alternate_body_shape(self):
        err = ApplicationFrameworkError(403, {"error": "forbidden", "message": "no access"})
        assert err.error_code == "forbidden"
        assert err.error_message == "no access"

    def test_non_dict_body(self):
        err = ApplicationFrameworkError(500, ["unexpected"])
        assert err.error_code is None
        assert err.error_message is None

    @pytest.mark.parametrize(
        "status,category,retryable",
        [
            (401, ErrorCategory.AUTH, False),
            (404, ErrorCategory.PERMANENT, False),
            (429, ErrorCategory.TRANSIENT, True),
            (503, ErrorCategory.TRANSIENT, True),
        ],
    )
    def test_category_follows_status(self, status, category, retryable):
        err = ApplicationFrameworkError(status, {})
        assert err.category == category
        assert err.is_retryable is retryable


class TestClassifyHttpStatus:
    def test_success_is_not_an_error(self):
        assert classify_http_status(200) == ErrorCategory.UNKNOWN

    def test_client_and_server_errors(self):
        assert classify_http_status(400) == ErrorCategory.PERMANENT
        assert classify_http_status(401) == ErrorCategory.AUTH
        assert classify_http_status(429) == ErrorCategory.TRANSIENT
        assert classify_http_status(502) == ErrorCategory.TRANSIENT

    def test_informational_is_unknown(self):
        assert classify_http_status(101) == ErrorCategory.UNKNOWN


class TestIsFeedError:
    def test_library_errors(self):
        assert is_feed_error(ParserError("x"))
        assert is_feed_error(ApplicationFrameworkError(500, None))

    def test_foreign_errors(self):
        assert not is_feed_error(ValueError("x"))
        assert not is_feed_error(TimeoutError())
