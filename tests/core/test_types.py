"""Tests for core.types module."""

from core.types import ErrorCategory, TokenSource


class TestErrorCategory:
    def test_values(self):
        assert ErrorCategory.TRANSIENT.value == "transient"
        assert ErrorCategory.AUTH.value == "auth"
        assert ErrorCategory.PERMANENT.value == "permanent"
        assert ErrorCategory.UNKNOWN.value == "unknown"

    def test_all_members(self):
        expected = {"TRANSIENT", "AUTH", "PERMANENT", "UNKNOWN"}
        assert set(ErrorCategory.__members__.keys()) == expected

    def test_from_value(self):
        assert ErrorCategory("transient") is ErrorCategory.TRANSIENT


class TestTokenSource:
    def test_is_protocol(self):
        assert hasattr(TokenSource, "current_access_token")
        assert hasattr(TokenSource, "auto_refresh")
        assert hasattr(TokenSource, "refresh_access_token")
