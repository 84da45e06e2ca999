"""oidc-session: OAuth2 / OpenID Connect session lifecycle for web apps.

Examples
--------
>>> from fastapi import FastAPI
>>> from starlette.middleware.sessions import SessionMiddleware
>>> from oidc_session import create_auth_router, create_provider_from_settings, get_settings
>>> settings = get_settings()
>>> app = FastAPI()
>>> app.add_middleware(SessionMiddleware, secret_key="change-me")
>>> app.include_router(create_auth_router(settings, create_provider_from_settings(settings)))
"""

from __future__ import annotations

from .auth import (
    AbsoluteDestination,
    EndpointDestination,
    GoogleProviderClient,
    IdentityProviderClient,
    NamedEndpointDestination,
    OIDCProviderClient,
    ReturnDestinationResolver,
    SessionLifecycle,
    create_provider_from_settings,
    parse_return_destination,
)
from .auth.routes import create_auth_router, create_session_dependency
from .config import OIDCSettings, clear_settings, get_settings, load_settings
from .exceptions import (
    ConfigurationError,
    IdTokenVerificationError,
    InputError,
    OIDCSessionError,
    ProfileError,
    ProviderError,
    TokenExchangeError,
    TokenRefreshError,
)
from .log import DiagnosticsSink, LoggingDiagnosticsSink, enable_debug, get_logger, set_level
from .state import (
    NO_USER,
    SessionField,
    SessionRecord,
    SessionStore,
    close_session_stores,
    get_session_store,
)


__version__ = "0.1.0"

__all__ = [
    "NO_USER",
    "AbsoluteDestination",
    "ConfigurationError",
    "DiagnosticsSink",
    "EndpointDestination",
    "GoogleProviderClient",
    "IdTokenVerificationError",
    "IdentityProviderClient",
    "InputError",
    "LoggingDiagnosticsSink",
    "NamedEndpointDestination",
    "OIDCProviderClient",
    "OIDCSessionError",
    "OIDCSettings",
    "ProfileError",
    "ProviderError",
    "ReturnDestinationResolver",
    "SessionField",
    "SessionLifecycle",
    "SessionRecord",
    "SessionStore",
    "TokenExchangeError",
    "TokenRefreshError",
    "__version__",
    "clear_settings",
    "close_session_stores",
    "create_auth_router",
    "create_provider_from_settings",
    "create_session_dependency",
    "enable_debug",
    "get_logger",
    "get_session_store",
    "get_settings",
    "load_settings",
    "parse_return_destination",
    "set_level",
]
