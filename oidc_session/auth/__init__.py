"""OAuth2 / OpenID Connect session lifecycle.

Provides identity provider clients, return destination handling, and
the per-request resolvers behind ``SessionLifecycle``. The FastAPI
adapter lives in ``oidc_session.auth.routes``.
"""

from __future__ import annotations

from .credentials import CredentialResolver
from .destination import (
    AbsoluteDestination,
    EndpointDestination,
    NamedEndpointDestination,
    ReturnDestination,
    ReturnDestinationResolver,
    parse_return_destination,
)
from .identity import IdentityResolver
from .lifecycle import SessionLifecycle
from .links import Component, LinkBuilder, PersistentComponent, StarletteLinkBuilder
from .providers import (
    GoogleProviderClient,
    IdentityProviderClient,
    OIDCProviderClient,
    create_provider_from_settings,
)


__all__ = [
    "AbsoluteDestination",
    "Component",
    "CredentialResolver",
    "EndpointDestination",
    "GoogleProviderClient",
    "IdentityProviderClient",
    "IdentityResolver",
    "LinkBuilder",
    "NamedEndpointDestination",
    "OIDCProviderClient",
    "PersistentComponent",
    "ReturnDestination",
    "ReturnDestinationResolver",
    "SessionLifecycle",
    "StarletteLinkBuilder",
    "create_provider_from_settings",
    "parse_return_destination",
]
