"""Type definitions for oidc-session state.

Shared types used across session store implementations and the
auth resolvers.
"""

from __future__ import annotations

import json
import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from ..exceptions import InputError


# Type aliases for clarity
AccessToken = dict[str, Any]
IdentityClaims = dict[str, Any]
UserId = str

#: Sentinel user id meaning "no user is logged in".
NO_USER: Final[UserId] = ""

#: Seconds subtracted from ``expires_in`` before a token counts as expired.
DEFAULT_EXPIRY_MARGIN: Final[int] = 30


class StateBackend(str, Enum):
    """Available session storage backends."""

    MEMORY = "memory"
    REDIS = "redis"
    COOKIE = "cookie"


class SessionField(str, Enum):
    """Keys of the per-browser-session OAuth record."""

    CODE = "code"
    STATE = "state"
    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"
    TOKEN_PAYLOAD = "token_payload"
    REJECTED_ID_TOKEN = "rejected_id_token"
    USER_ID = "user_id"


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time copy of a session record.

    Attributes
    ----------
    code : str or None
        Last authorization code exchanged in this session.
    state : str or None
        Pending CSRF nonce awaiting the provider callback.
    access_token : AccessToken or None
        The persisted access token mapping.
    refresh_token : str or None
        Refresh token; may outlive ``access_token``.
    token_payload : IdentityClaims or None
        Cached verified ID-token claims.
    rejected_id_token : str or None
        Last ID token whose verification failed.
    user_id : str
        Cached resolved identity, ``NO_USER`` when logged out.
    """

    code: str | None = None
    state: str | None = None
    access_token: AccessToken | None = None
    refresh_token: str | None = None
    token_payload: IdentityClaims | None = None
    rejected_id_token: str | None = None
    user_id: UserId = NO_USER


@dataclass
class InboundRequest:
    """Request parameters the session lifecycle reads.

    Attributes
    ----------
    post : dict[str, Any]
        Parsed form body (takes precedence).
    query : dict[str, Any]
        Query string parameters.
    """

    post: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the first non-empty value from POST, then query."""
        value = self.post.get(key)
        if value:
            return value
        value = self.query.get(key)
        if value:
            return value
        return default

    @classmethod
    async def from_starlette(cls, request: Any) -> InboundRequest:
        """Build from a Starlette/FastAPI request.

        The form body is only read for form-encoded POST requests.
        """
        post: dict[str, Any] = {}
        content_type = request.headers.get("content-type", "")
        if request.method == "POST" and (
            content_type.startswith("application/x-www-form-urlencoded")
            or content_type.startswith("multipart/form-data")
        ):
            form = await request.form()
            post = {k: v for k, v in form.items() if isinstance(v, str)}
        return cls(post=post, query=dict(request.query_params))


def parse_access_token(raw: AccessToken | str | bytes) -> AccessToken:
    """Parse an access token from a mapping or its JSON form.

    Parameters
    ----------
    raw : dict or str or bytes
        A token mapping or its serialized JSON object.

    Returns
    -------
    AccessToken
        A new dict carrying the token fields.

    Raises
    ------
    InputError
        If the JSON is malformed, not an object, or lacks ``access_token``.
    """
    if isinstance(raw, (str, bytes)):
        try:
            token = json.loads(raw)
        except ValueError as exc:
            msg = f"Access token is not valid JSON: {exc}"
            raise InputError(msg) from exc
    else:
        token = raw

    if not isinstance(token, dict):
        msg = f"Access token must be a JSON object, got {type(token).__name__}"
        raise InputError(msg)

    if not token.get("access_token"):
        msg = "Token is required to carry an 'access_token' field"
        raise InputError(msg, field="access_token")

    return dict(token)


def is_token_expired(
    token: AccessToken,
    margin: int = DEFAULT_EXPIRY_MARGIN,
    now: float | None = None,
) -> bool:
    """Check whether *token* is past its lifetime minus *margin* seconds.

    Tokens without both ``created`` and ``expires_in`` never expire here.
    """
    created = token.get("created")
    expires_in = token.get("expires_in")
    if created is None or expires_in is None:
        return False
    if now is None:
        now = time.time()
    return (float(created) + (float(expires_in) - margin)) < now
