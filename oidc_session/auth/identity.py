"""User identity resolution from ID-token claims or the profile endpoint."""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from ..exceptions import ProviderError
from ..state.types import NO_USER, SessionField
from .credentials import CHANNEL


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..log import DiagnosticsSink
    from ..state.base import SessionRecord
    from ..state.types import AccessToken, IdentityClaims, UserId
    from .providers import IdentityProviderClient


logger = logging.getLogger("oidc_session.auth")


class IdentityResolver:
    """Derives and caches the user id of the session.

    Parameters
    ----------
    record : SessionRecord
        The browser session's OAuth record.
    provider : IdentityProviderClient
        Verifies ID tokens and fetches profiles.
    token_source : callable
        Coroutine function returning the memoized current access token.
    diagnostics : DiagnosticsSink
        Receives absorbed failures.
    invalidate : callable
        Coroutine function clearing the record and every in-memory cache.
    """

    def __init__(
        self,
        record: SessionRecord,
        provider: IdentityProviderClient,
        token_source: Callable[[], Awaitable[AccessToken | None]],
        diagnostics: DiagnosticsSink,
        invalidate: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.record = record
        self.provider = provider
        self.token_source = token_source
        self.diagnostics = diagnostics
        self.invalidate = invalidate or record.clear_all

    async def resolve_user(self) -> UserId:
        """Return the user id, or ``NO_USER``.

        The cached id is reused while the token it was derived from is
        still the persisted one. Any failure while deriving a fresh id
        is logged and logs the user out.
        """
        # the token source may run a code exchange that resets USER_ID
        token = await self.token_source()
        user_id: UserId = await self.record.get(SessionField.USER_ID)
        if not token:
            return user_id
        if user_id and token == await self.record.get(SessionField.ACCESS_TOKEN):
            return user_id

        try:
            claims = await self.resolve_verified_claims()
            if claims:
                sub = claims.get("sub")
                user_id = NO_USER if sub is None else str(sub)
            else:
                user_id = await self.provider.fetch_profile(token)
        except Exception as exc:  # noqa: BLE001
            self.diagnostics.log(exc, CHANNEL)
            user_id = NO_USER

        if user_id:
            await self.record.set(SessionField.USER_ID, user_id)
        else:
            logger.debug("No user identity resolved, clearing session record")
            await self.invalidate()
        return user_id

    async def resolve_verified_claims(self) -> IdentityClaims | None:
        """Return the verified ID-token claims, cached in the record.

        An ID token that failed verification is remembered, so it is
        not verified again on later requests of the session.
        """
        token = await self.token_source()
        if not token or not token.get("id_token"):
            return None

        cached = await self.record.get(SessionField.TOKEN_PAYLOAD)
        if cached:
            return cached
        if token["id_token"] == await self.record.get(SessionField.REJECTED_ID_TOKEN):
            return None

        try:
            claims = await self.provider.verify_id_token(token)
        except ProviderError as exc:
            self.diagnostics.log(exc, CHANNEL)
            claims = None

        if not claims:
            await self.record.set(SessionField.TOKEN_PAYLOAD, None)
            await self.record.set(SessionField.REJECTED_ID_TOKEN, token["id_token"])
            return None

        await self.record.set(SessionField.TOKEN_PAYLOAD, claims)
        return claims
