"""Access token resolution.

Runs the precedence chain that turns the session record and the
inbound request into the current access token: exchange a fresh
authorization code, refresh a lapsed token, drop an expired one, or
return what is stored.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import json
import logging
import time

from typing import TYPE_CHECKING

from ..exceptions import InputError
from ..state.types import DEFAULT_EXPIRY_MARGIN, SessionField, is_token_expired, parse_access_token


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..log import DiagnosticsSink
    from ..state.base import SessionRecord
    from ..state.types import AccessToken
    from .providers import IdentityProviderClient


logger = logging.getLogger("oidc_session.auth")

#: Diagnostics channel of every error absorbed by the resolvers.
CHANNEL = "oidc"


class CredentialResolver:
    """Derives the access token for one request.

    Parameters
    ----------
    record : SessionRecord
        The browser session's OAuth record.
    provider : IdentityProviderClient
        Performs code exchange and refresh.
    code_source : callable
        Coroutine function returning the CSRF-checked authorization code.
    redirect_uri : callable
        Returns the redirect URI sent with the code exchange.
    diagnostics : DiagnosticsSink
        Receives absorbed provider failures.
    invalidate : callable
        Coroutine function clearing the record and every in-memory cache.
    expiry_margin : int
        Seconds before ``expires_in`` at which a token counts as expired.
    clock : callable
        Returns the current epoch time.
    """

    def __init__(
        self,
        record: SessionRecord,
        provider: IdentityProviderClient,
        code_source: Callable[[], Awaitable[str | None]],
        redirect_uri: Callable[[], str],
        diagnostics: DiagnosticsSink,
        invalidate: Callable[[], Awaitable[None]] | None = None,
        expiry_margin: int = DEFAULT_EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.record = record
        self.provider = provider
        self.code_source = code_source
        self.redirect_uri = redirect_uri
        self.diagnostics = diagnostics
        self.invalidate = invalidate or record.clear_all
        self.expiry_margin = expiry_margin
        self.clock = clock

    async def resolve_access_token(self) -> AccessToken | None:
        """Return the current access token, or None when there is none.

        Provider failures are logged to diagnostics and invalidate the
        session record; they never propagate.
        """
        code = await self.code_source()
        if code and code != await self.record.get(SessionField.CODE):
            return await self._exchange(code)

        token = await self.record.get(SessionField.ACCESS_TOKEN)
        if not token:
            refresh_token = await self.record.get(SessionField.REFRESH_TOKEN)
            if refresh_token:
                return await self._refresh(refresh_token)
            return None

        if not isinstance(token, dict) or not token.get("access_token"):
            self.diagnostics.log(
                InputError("Stored token carries no access_token", field="access_token"),
                CHANNEL,
            )
            await self.invalidate()
            return None

        if is_token_expired(token, self.expiry_margin, self.clock()):
            logger.debug("Stored access token expired, clearing session record")
            await self.invalidate()
            return None

        return token

    async def _exchange(self, code: str) -> AccessToken | None:
        redirect_uri = self.redirect_uri()
        try:
            token = parse_access_token(await self.provider.exchange_code(code, redirect_uri))
        except Exception as exc:  # noqa: BLE001
            self.diagnostics.log(exc, CHANNEL)
            await self.invalidate()
            return None

        await self.record.set(SessionField.CODE, code)
        await self.record.set(SessionField.TOKEN_PAYLOAD, None)
        await self.record.set(SessionField.REJECTED_ID_TOKEN, None)
        await self.record.set(SessionField.REFRESH_TOKEN, token.get("refresh_token"))
        # a new login never inherits the previous identity
        await self.record.set(SessionField.USER_ID, None)
        await self.record.set(SessionField.ACCESS_TOKEN, token)
        logger.info("Authorization code exchanged for an access token")
        return token

    async def _refresh(self, refresh_token: str) -> AccessToken | None:
        try:
            raw = await self.provider.refresh(refresh_token)
            if not raw:
                msg = "Provider returned an empty refresh response"
                raise InputError(msg)
            token = parse_access_token(json.loads(raw) if isinstance(raw, (str, bytes)) else raw)
        except Exception as exc:  # noqa: BLE001
            self.diagnostics.log(exc, CHANNEL)
            await self.invalidate()
            return None

        token["refresh_token"] = refresh_token
        await self.record.set(SessionField.CODE, None)
        await self.record.set(SessionField.ACCESS_TOKEN, token)
        logger.info("Access token refreshed")
        return token
