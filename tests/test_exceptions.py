"""Tests for oidc_session.exceptions module.

These tests verify the exception hierarchy, message formatting and
context storage. No mocks needed.
"""

from __future__ import annotations

import pytest

from oidc_session.exceptions import (
    ConfigurationError,
    IdTokenVerificationError,
    InputError,
    OIDCSessionError,
    ProfileError,
    ProviderError,
    TokenExchangeError,
    TokenRefreshError,
)


class TestOIDCSessionError:
    """Test base exception class behavior."""

    def test_message_only(self) -> None:
        """Exception with just a message stores it correctly."""
        exc = OIDCSessionError("Something went wrong")
        assert exc.message == "Something went wrong"
        assert not exc.context
        assert str(exc) == "Something went wrong"

    def test_with_context(self) -> None:
        """Context appears in the string representation."""
        exc = OIDCSessionError("Failed", channel="oidc", attempt=1)
        assert exc.context == {"channel": "oidc", "attempt": 1}
        assert "channel='oidc'" in str(exc)
        assert "attempt=1" in str(exc)


class TestInputError:
    """Tests for InputError."""

    def test_is_value_error(self) -> None:
        """InputError can be caught as ValueError."""
        with pytest.raises(ValueError, match="bad token"):
            raise InputError("bad token", field="access_token")

    def test_field_stored(self) -> None:
        """The offending field is kept as attribute and context."""
        exc = InputError("bad token", field="access_token")
        assert exc.field == "access_token"
        assert exc.context["field"] == "access_token"


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_setting_stored(self) -> None:
        """The failing setting is kept."""
        exc = ConfigurationError("nope", setting="return_uri")
        assert exc.setting == "return_uri"
        assert isinstance(exc, ValueError)
        assert isinstance(exc, OIDCSessionError)


class TestProviderErrors:
    """Tests for the provider error family."""

    @pytest.mark.parametrize(
        "cls",
        [TokenExchangeError, TokenRefreshError, IdTokenVerificationError, ProfileError],
    )
    def test_subclasses_are_provider_errors(self, cls: type[ProviderError]) -> None:
        """Every adapter failure is caught by ProviderError."""
        exc = cls("failed", provider="GoogleProviderClient")
        assert isinstance(exc, ProviderError)
        assert exc.provider == "GoogleProviderClient"
        assert "provider='GoogleProviderClient'" in str(exc)

    def test_provider_error_is_not_value_error(self) -> None:
        """Provider failures are not input validation errors."""
        assert not isinstance(ProviderError("x"), ValueError)
