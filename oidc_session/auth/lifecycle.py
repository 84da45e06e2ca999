"""Per-request OAuth session lifecycle.

``SessionLifecycle`` is the facade host applications talk to. It
checks the inbound callback against the stored CSRF state, delegates
token and identity derivation to the resolvers, and memoizes their
results for the rest of the request.

Examples
--------
>>> lifecycle = SessionLifecycle(record, inbound, provider, resolver)
>>> user_id = await lifecycle.get_user()
>>> if not user_id:
...     login_url = await lifecycle.create_login_url()
"""

# pylint: disable=too-many-instance-attributes

from __future__ import annotations

import logging
import secrets
import time

from typing import TYPE_CHECKING, Any

from ..exceptions import ConfigurationError, ProfileError
from ..log import LoggingDiagnosticsSink
from ..state.types import DEFAULT_EXPIRY_MARGIN, NO_USER, SessionField, parse_access_token
from .credentials import CredentialResolver
from .identity import IdentityResolver


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..log import DiagnosticsSink
    from ..state.base import SessionRecord
    from ..state.types import AccessToken, IdentityClaims, InboundRequest, UserId
    from .destination import ReturnDestinationResolver
    from .providers import IdentityProviderClient


logger = logging.getLogger("oidc_session.auth")


class SessionLifecycle:
    """Orchestrates token and identity resolution for one request.

    Parameters
    ----------
    record : SessionRecord
        The browser session's OAuth record.
    request : InboundRequest
        POST and query parameters of the current request.
    provider : IdentityProviderClient
        The identity provider adapter.
    destination : ReturnDestinationResolver, optional
        Resolves the redirect URI; required for code exchange and login.
    diagnostics : DiagnosticsSink, optional
        Receives absorbed errors (defaults to a logging sink).
    expiry_margin : int
        Seconds before ``expires_in`` at which a token counts as expired.
    clock : callable
        Returns the current epoch time.
    """

    def __init__(
        self,
        record: SessionRecord,
        request: InboundRequest,
        provider: IdentityProviderClient,
        destination: ReturnDestinationResolver | None = None,
        diagnostics: DiagnosticsSink | None = None,
        *,
        expiry_margin: int = DEFAULT_EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.record = record
        self.request = request
        self.provider = provider
        self.destination = destination
        self.diagnostics = diagnostics or LoggingDiagnosticsSink()

        self._access_token: AccessToken | None = None
        self._user: UserId = NO_USER
        self._claims: IdentityClaims | None = None

        self.credentials = CredentialResolver(
            record,
            provider,
            code_source=self.extract_authorization_code,
            redirect_uri=lambda: self.redirect_uri,
            diagnostics=self.diagnostics,
            invalidate=self._invalidate,
            expiry_margin=expiry_margin,
            clock=clock,
        )
        self.identity = IdentityResolver(
            record,
            provider,
            token_source=self.get_access_token,
            diagnostics=self.diagnostics,
            invalidate=self._invalidate,
        )

    @property
    def redirect_uri(self) -> str:
        """The resolved return destination of this request."""
        if self.destination is None:
            msg = "No return destination configured"
            raise ConfigurationError(msg, setting="return_uri")
        return self.destination.resolve()

    def _forget(self) -> None:
        self._access_token = None
        self._user = NO_USER
        self._claims = None

    async def _invalidate(self) -> None:
        self._forget()
        await self.record.clear_all()

    async def extract_authorization_code(self) -> str | None:
        """Return the callback's authorization code if its state matches.

        The stored state is single use: it is cleared on a match. A
        missing or mismatched state leaves the record untouched.
        """
        code = self.request.get("code")
        state = self.request.get("state")
        if not code or not state:
            return None

        stored = await self.record.get(SessionField.STATE)
        if not stored or not secrets.compare_digest(str(state), str(stored)):
            logger.debug("Ignoring authorization code with unexpected state")
            return None

        await self.record.set(SessionField.STATE, None)
        return str(code)

    async def get_access_token(self, key: str | None = None) -> Any:
        """Return the access token, or one of its fields when *key* is given."""
        if self._access_token is None:
            token = await self.credentials.resolve_access_token()
            if token:
                self._access_token = token
        if key is None:
            return self._access_token
        return self._access_token.get(key) if self._access_token else None

    async def set_access_token(self, raw: AccessToken | str | bytes) -> SessionLifecycle:
        """Use an externally obtained token for the rest of the request.

        Raises
        ------
        InputError
            If *raw* is malformed or lacks ``access_token``.
        """
        token = parse_access_token(raw)
        if token.get("refresh_token"):
            await self.set_refresh_token(token["refresh_token"])
        self._access_token = token
        return self

    async def get_refresh_token(self) -> str | None:
        """Return the stored refresh token."""
        return await self.record.get(SessionField.REFRESH_TOKEN)

    async def set_refresh_token(self, refresh_token: str | None) -> SessionLifecycle:
        """Store *refresh_token* (None removes it)."""
        await self.record.set(SessionField.REFRESH_TOKEN, refresh_token)
        return self

    async def get_user(self) -> UserId:
        """Return the logged-in user id, or ``NO_USER``."""
        if not self._user:
            self._user = await self.identity.resolve_user()
        return self._user

    async def get_id_token(self, key: str | None = None) -> Any:
        """Return the verified ID-token claims, or one claim when *key* is given."""
        if not await self.get_user():
            return None
        if self._claims is None:
            self._claims = await self.identity.resolve_verified_claims()
        if self._claims is None:
            return None
        if key is None:
            return self._claims
        return self._claims.get(key)

    async def get_profile(self) -> dict[str, Any]:
        """Fetch the provider's userinfo document.

        Raises
        ------
        ProviderError
            If there is no access token or the provider call fails.
        """
        token = await self.get_access_token()
        if not token:
            msg = "No access token available for the profile request"
            raise ProfileError(msg, provider=self.provider.name)
        return await self.provider.fetch_userinfo(token)

    async def create_login_url(self, extra_params: dict[str, str] | None = None) -> str:
        """Start a login: store a fresh state nonce and return the authorize URL."""
        redirect_uri = self.redirect_uri
        state = secrets.token_urlsafe(32)
        await self.record.set(SessionField.STATE, state)
        return self.provider.build_authorize_url(redirect_uri, state, extra_params)

    async def destroy(self) -> None:
        """Forget the cached credentials and clear the session record."""
        logger.debug("Destroying OAuth session")
        await self._invalidate()
