"""Identity provider client abstractions.

Defines the IdentityProviderClient ABC consumed by the session
lifecycle, and httpx/authlib backed implementations for generic
OpenID Connect issuers and Google.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import json
import logging
import time

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from ..exceptions import (
    ConfigurationError,
    IdTokenVerificationError,
    ProfileError,
    TokenExchangeError,
    TokenRefreshError,
)
from ..log import redact_sensitive_data


if TYPE_CHECKING:
    from ..config import OIDCSettings
    from ..state.types import AccessToken, IdentityClaims, UserId


logger = logging.getLogger("oidc_session.auth")

_ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]


class IdentityProviderClient(ABC):
    """Abstract base class for identity provider clients.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    client_secret : str
        The OAuth2 client secret (empty string for public clients).
    scopes : list[str]
        Requested OAuth2 scopes.
    authorize_url : str
        The provider's authorization endpoint.
    token_url : str
        The provider's token endpoint.
    userinfo_url : str
        The provider's userinfo endpoint.
    access_type : str
        ``online`` or ``offline`` (ask for a refresh token).
    timeout : float
        HTTP timeout in seconds for every provider call.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        authorize_url: str = "",
        token_url: str = "",
        userinfo_url: str = "",
        access_type: str = "online",
        timeout: float = 30.0,
    ) -> None:
        """Initialize the provider client."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or []
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.userinfo_url = userinfo_url
        self.access_type = access_type
        self.timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        """Adapter name used in error context."""
        return self.__class__.__name__

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        redirect_uri : str
            The callback URL to redirect to after authorization.
        state : str
            CSRF protection nonce.
        extra_params : dict, optional
            Additional query parameters.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": " ".join(self.scopes),
        }
        if extra_params:
            params.update(extra_params)
        return f"{self.authorize_url}?{urlencode(params)}"

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str) -> AccessToken:
        """Exchange an authorization code for an access token.

        Parameters
        ----------
        code : str
            The authorization code from the callback.
        redirect_uri : str
            The redirect URI used in the authorization request.

        Returns
        -------
        AccessToken
            The token mapping, stamped with ``created``.

        Raises
        ------
        TokenExchangeError
            If the provider rejects the code.
        """

    @abstractmethod
    async def refresh(self, refresh_token: str) -> str:
        """Obtain a new access token with a refresh token.

        Parameters
        ----------
        refresh_token : str
            The refresh token.

        Returns
        -------
        str
            The new token serialized as a JSON object.

        Raises
        ------
        TokenRefreshError
            If the refresh fails.
        """

    @abstractmethod
    async def verify_id_token(self, token: AccessToken) -> IdentityClaims | None:
        """Verify the ``id_token`` carried by *token*.

        Parameters
        ----------
        token : AccessToken
            The current access token mapping.

        Returns
        -------
        IdentityClaims or None
            The verified claims, or None if there is no ID token or
            it fails validation.

        Raises
        ------
        IdTokenVerificationError
            If verification could not be attempted (e.g. key fetch failed).
        """

    async def fetch_userinfo(self, token: AccessToken) -> dict[str, Any]:
        """Fetch the user profile document.

        Parameters
        ----------
        token : AccessToken
            A valid access token mapping.

        Returns
        -------
        dict[str, Any]
            User profile data from the provider.

        Raises
        ------
        ProfileError
            If no endpoint is configured or the request fails.
        """
        if not self.userinfo_url:
            msg = "Userinfo URL not configured"
            raise ProfileError(msg, provider=self.name)
        try:
            client = await self._get_client()
            resp = await client.get(
                self.userinfo_url,
                headers={"Authorization": f"Bearer {token['access_token']}"},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Userinfo request failed: {exc.response.status_code}"
            raise ProfileError(msg, provider=self.name) from exc
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Userinfo request failed: {exc}"
            raise ProfileError(msg, provider=self.name) from exc
        if not isinstance(data, dict):
            msg = "Userinfo response is not a JSON object"
            raise ProfileError(msg, provider=self.name)
        return data

    async def fetch_profile(self, token: AccessToken) -> UserId:
        """Return the user identifier from the profile document.

        Raises
        ------
        ProfileError
            If the profile carries neither ``sub`` nor ``id``.
        """
        info = await self.fetch_userinfo(token)
        user_id = info.get("sub") or info.get("id")
        if not user_id:
            msg = "Userinfo response carries no user identifier"
            raise ProfileError(msg, provider=self.name)
        return str(user_id)


class OIDCProviderClient(IdentityProviderClient):
    """Generic OpenID Connect provider client.

    Supports auto-discovery from ``/.well-known/openid-configuration``
    if an ``issuer_url`` is provided.

    Parameters
    ----------
    client_id : str
        The OAuth2 client ID.
    client_secret : str
        The OAuth2 client secret.
    issuer_url : str
        The OIDC issuer URL (used for discovery and ``iss`` validation).
    jwks_url : str
        JWKS endpoint; discovered when empty.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        issuer_url: str = "",
        scopes: list[str] | None = None,
        authorize_url: str = "",
        token_url: str = "",
        userinfo_url: str = "",
        jwks_url: str = "",
        access_type: str = "online",
        timeout: float = 30.0,
    ) -> None:
        """Initialize OIDC provider client."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes or ["openid", "email", "profile"],
            authorize_url=authorize_url,
            token_url=token_url,
            userinfo_url=userinfo_url,
            access_type=access_type,
            timeout=timeout,
        )
        self.issuer_url = issuer_url
        self.jwks_url = jwks_url
        self._discovered = False
        self._jwks_data: dict[str, Any] | None = None

    @property
    def accepted_issuers(self) -> list[str]:
        """Issuer values accepted in ID tokens (empty disables the check)."""
        return [self.issuer_url.rstrip("/")] if self.issuer_url else []

    async def _discover(self) -> None:
        """Auto-discover OIDC endpoints from the well-known configuration."""
        if self._discovered or not self.issuer_url:
            return
        url = f"{self.issuer_url.rstrip('/')}/.well-known/openid-configuration"
        try:
            client = await self._get_client()
            resp = await client.get(url)
            resp.raise_for_status()
            config = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OIDC discovery failed for %s: %s", self.issuer_url, exc)
            return

        discovered_issuer = config.get("issuer", "")
        expected = self.issuer_url.rstrip("/")
        if discovered_issuer.rstrip("/") != expected:
            msg = f"OIDC issuer mismatch: expected '{expected}', got '{discovered_issuer}'"
            raise ConfigurationError(msg, setting="issuer_url")
        if not self.authorize_url:
            self.authorize_url = config.get("authorization_endpoint", "")
        if not self.token_url:
            self.token_url = config.get("token_endpoint", "")
        if not self.userinfo_url:
            self.userinfo_url = config.get("userinfo_endpoint", "")
        if not self.jwks_url:
            self.jwks_url = config.get("jwks_uri", "")
        self._discovered = True

    async def _fetch_jwks(self) -> dict[str, Any]:
        """Fetch the JWKS key set from the provider."""
        if self._jwks_data is not None:
            return self._jwks_data
        await self._discover()
        if not self.jwks_url:
            msg = "JWKS URL not configured and discovery failed"
            raise IdTokenVerificationError(msg, provider=self.name)
        try:
            client = await self._get_client()
            resp = await client.get(self.jwks_url)
            resp.raise_for_status()
            self._jwks_data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"JWKS request failed: {exc}"
            raise IdTokenVerificationError(msg, provider=self.name) from exc
        return self._jwks_data

    async def _post_token(
        self,
        data: dict[str, str],
        error_cls: type[TokenExchangeError] | type[TokenRefreshError],
    ) -> dict[str, Any]:
        """POST to the token endpoint and return the decoded response."""
        await self._discover()
        if not self.token_url:
            msg = "Token URL not configured and discovery failed"
            raise error_cls(msg, provider=self.name)

        data = {**data, "client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            client = await self._get_client()
            resp = await client.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Token request failed: {exc.response.status_code}"
            raise error_cls(msg, provider=self.name) from exc
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Token request failed: {exc}"
            raise error_cls(msg, provider=self.name) from exc

        if not isinstance(raw, dict):
            msg = "Token response is not a JSON object"
            raise error_cls(msg, provider=self.name)
        if "error" in raw:
            msg = f"Token error: {raw.get('error_description') or raw['error']}"
            raise error_cls(msg, provider=self.name, error=raw["error"])

        logger.debug("Token response from %s: %s", self.name, redact_sensitive_data(raw))
        raw.setdefault("created", int(time.time()))
        return raw

    async def exchange_code(self, code: str, redirect_uri: str) -> AccessToken:
        """Exchange authorization code for tokens via the token endpoint."""
        token = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
            TokenExchangeError,
        )
        logger.debug("Authorization code exchanged by %s", self.name)
        return token

    async def refresh(self, refresh_token: str) -> str:
        """Refresh tokens via the token endpoint."""
        token = await self._post_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            TokenRefreshError,
        )
        logger.debug("Access token refreshed by %s", self.name)
        return json.dumps(token)

    async def verify_id_token(self, token: AccessToken) -> IdentityClaims | None:
        """Validate the ID token signature (JWKS), issuer, audience and expiry."""
        id_token = token.get("id_token")
        if not id_token:
            return None

        jwks_data = await self._fetch_jwks()

        claims_options: dict[str, Any] = {
            "aud": {"essential": True, "value": self.client_id},
            "exp": {"essential": True},
        }
        if self.accepted_issuers:
            claims_options["iss"] = {"essential": True, "values": self.accepted_issuers}

        jwt = JsonWebToken(_ID_TOKEN_ALGORITHMS)
        try:
            key_set = JsonWebKey.import_key_set(jwks_data)
            claims = jwt.decode(id_token, key_set, claims_options=claims_options)
            claims.validate()
        except (JoseError, ValueError) as exc:
            logger.info("ID token rejected by %s: %s", self.name, exc)
            return None

        return dict(claims)


class GoogleProviderClient(OIDCProviderClient):
    """Google OpenID Connect client with preset endpoints.

    Parameters
    ----------
    client_id : str
        Google OAuth2 client ID.
    client_secret : str
        Google OAuth2 client secret.
    scopes : list[str], optional
        Requested scopes (defaults to openid, email, profile).
    access_type : str
        ``offline`` also requests consent so Google issues a refresh token.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        access_type: str = "online",
        timeout: float = 30.0,
    ) -> None:
        """Initialize Google provider client."""
        super().__init__(
            client_id=client_id,
            client_secret=client_secret,
            issuer_url="https://accounts.google.com",
            scopes=scopes or ["openid", "email", "profile"],
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",  # noqa: S106
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            jwks_url="https://www.googleapis.com/oauth2/v3/certs",
            access_type=access_type,
            timeout=timeout,
        )
        # endpoints are preset
        self._discovered = True

    @property
    def accepted_issuers(self) -> list[str]:
        """Google signs ID tokens with either issuer spelling."""
        return ["https://accounts.google.com", "accounts.google.com"]

    def build_authorize_url(
        self,
        redirect_uri: str,
        state: str,
        extra_params: dict[str, str] | None = None,
    ) -> str:
        """Build Google authorization URL with the configured access_type."""
        params = {"access_type": self.access_type}
        if self.access_type == "offline":
            params["prompt"] = "consent"
        if extra_params:
            params.update(extra_params)
        return super().build_authorize_url(redirect_uri, state, params)


def create_provider_from_settings(settings: OIDCSettings) -> IdentityProviderClient:
    """Create a provider client from OIDCSettings.

    Parameters
    ----------
    settings : OIDCSettings
        The validated configuration.

    Returns
    -------
    IdentityProviderClient
        A configured provider client instance.
    """
    if settings.provider == "google":
        return GoogleProviderClient(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scopes=settings.scopes,
            access_type=settings.access_type,
            timeout=settings.http_timeout_seconds,
        )
    return OIDCProviderClient(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        issuer_url=settings.issuer_url,
        scopes=settings.scopes,
        authorize_url=settings.authorize_url,
        token_url=settings.token_url,
        userinfo_url=settings.userinfo_url,
        jwks_url=settings.jwks_url,
        access_type=settings.access_type,
        timeout=settings.http_timeout_seconds,
    )
