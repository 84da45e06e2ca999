"""oidc-session exception hierarchy.

All package exceptions inherit from OIDCSessionError, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class OIDCSessionError(Exception):
    """Base exception for all oidc-session errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize the exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, field, channel, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class InputError(OIDCSessionError, ValueError):
    """Externally supplied token is malformed.

    Raised by ``SessionLifecycle.set_access_token`` when the token
    cannot be parsed or lacks the required ``access_token`` field.
    """

    def __init__(self, message: str, field: str | None = None, **context: Any) -> None:
        """Initialize input error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        field : str, optional
            The offending token field, if any.
        **context : Any
            Additional context.
        """
        super().__init__(message, field=field, **context)
        self.field = field


class ConfigurationError(OIDCSessionError, ValueError):
    """Configuration is invalid.

    Raised at startup for unusable return destinations or
    conflicting credential settings. Never recovered.
    """

    def __init__(self, message: str, setting: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        setting : str, optional
            The configuration key that failed validation.
        **context : Any
            Additional context.
        """
        super().__init__(message, setting=setting, **context)
        self.setting = setting


class ProviderError(OIDCSessionError):
    """Base exception for identity provider failures.

    Raised by provider adapters when exchange, refresh, verification
    or profile calls fail.
    """

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider adapter name (e.g., "GoogleProviderClient").
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class TokenExchangeError(ProviderError):
    """The provider rejected an authorization code.

    Usually the code expired, was already used, or the user
    revoked the grant in between.
    """


class TokenRefreshError(ProviderError):
    """Refreshing an access token failed."""


class IdTokenVerificationError(ProviderError):
    """An ID token failed signature or claim validation."""


class ProfileError(ProviderError):
    """Fetching the user profile failed or returned no identifier."""
