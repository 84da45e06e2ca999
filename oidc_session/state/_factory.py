"""Internal factory for session stores.

Kept apart from ``__init__`` so the web adapter can import it without
pulling in every backend at package import time.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Any

from .memory import MemorySessionRegistry
from .types import StateBackend


if TYPE_CHECKING:
    from starlette.requests import HTTPConnection

    from .base import SessionStore


@lru_cache(maxsize=None)
def get_memory_registry(ttl: int | None = None) -> MemorySessionRegistry:
    """Get the process-wide memory registry for sessions expiring after *ttl*."""
    return MemorySessionRegistry(ttl=ttl)


def get_session_store(
    backend: StateBackend | str,
    *,
    session_id: str | None = None,
    connection: HTTPConnection | None = None,
    redis_url: str = "redis://localhost:6379/0",
    prefix: str = "oidc_session",
    ttl: int | None = None,
    redis_client: Any = None,
    section: str = "oidc",
) -> SessionStore:
    """Get the session store of one browser session.

    Parameters
    ----------
    backend : StateBackend or str
        ``memory``, ``redis`` or ``cookie``.
    session_id : str, optional
        Browser session id; required by the memory and redis backends.
    connection : HTTPConnection, optional
        Current request; required by the cookie backend.
    redis_url, prefix, ttl, redis_client
        Redis backend options.
    section : str
        ``request.session`` key of the cookie backend.

    Returns
    -------
    SessionStore
        The store instance.

    Raises
    ------
    ValueError
        If the backend is unknown or its required argument is missing.
    """
    backend = StateBackend(backend)

    if backend == StateBackend.COOKIE:
        if connection is None:
            msg = "The cookie backend requires the current request"
            raise ValueError(msg)
        from .cookie import CookieSessionStore

        return CookieSessionStore(connection, section=section)

    if not session_id:
        msg = f"The {backend.value} backend requires a session id"
        raise ValueError(msg)

    if backend == StateBackend.REDIS:
        from .redis import RedisSessionStore

        return RedisSessionStore(
            session_id,
            redis_url=redis_url,
            prefix=prefix,
            ttl=ttl,
            redis_client=redis_client,
        )

    return get_memory_registry(ttl).store(session_id)


async def close_session_stores() -> None:
    """Release shared backend resources; call on application shutdown."""
    from .redis import close_redis_clients

    await close_redis_clients()


def reset_session_stores() -> None:
    """Drop every in-memory session (for testing)."""
    get_memory_registry.cache_clear()
