"""oidc-session state management package.

Pluggable per-browser-session storage for the OAuth record. The
default is in-memory storage for single-process deployments; Redis
serves multi-worker deployments and the cookie backend keeps the
record in Starlette's signed session cookie.

Examples
--------
>>> from oidc_session.state import SessionRecord, get_session_store
>>> record = SessionRecord(get_session_store("memory", session_id="abc"))
>>> await record.get(SessionField.USER_ID)
''
"""

from __future__ import annotations

from ._factory import (
    close_session_stores,
    get_memory_registry,
    get_session_store,
    reset_session_stores,
)
from .base import SessionRecord, SessionStore
from .cookie import CookieSessionStore
from .memory import MemorySessionRegistry, MemorySessionStore, RegisteredMemorySessionStore
from .redis import RedisSessionStore, close_redis_clients, get_redis_client
from .types import (
    NO_USER,
    AccessToken,
    IdentityClaims,
    InboundRequest,
    SessionField,
    SessionSnapshot,
    StateBackend,
    UserId,
    is_token_expired,
    parse_access_token,
)


__all__ = [
    "NO_USER",
    "AccessToken",
    "CookieSessionStore",
    "IdentityClaims",
    "InboundRequest",
    "MemorySessionRegistry",
    "MemorySessionStore",
    "RedisSessionStore",
    "RegisteredMemorySessionStore",
    "SessionField",
    "SessionRecord",
    "SessionSnapshot",
    "SessionStore",
    "StateBackend",
    "UserId",
    "close_redis_clients",
    "close_session_stores",
    "get_memory_registry",
    "get_redis_client",
    "get_session_store",
    "is_token_expired",
    "parse_access_token",
    "reset_session_stores",
]
