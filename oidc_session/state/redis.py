"""Redis session store implementation.

Production backend for multi-worker deployments. Each browser session
is one Redis hash whose values are JSON-encoded.
"""

from __future__ import annotations

import json
import threading

from typing import Any

from redis.asyncio import Redis

from .base import SessionStore


class _RedisClients:
    """Process-wide Redis clients keyed by connection URL."""

    clients: dict[str, Redis] = {}  # noqa: RUF012
    lock = threading.Lock()


def get_redis_client(redis_url: str) -> Redis:
    """Return the shared client (and connection pool) for *redis_url*."""
    with _RedisClients.lock:
        client = _RedisClients.clients.get(redis_url)
        if client is None:
            client = _RedisClients.clients[redis_url] = Redis.from_url(
                redis_url,
                decode_responses=True,
            )
        return client


async def close_redis_clients() -> None:
    """Close every shared client, e.g. on application shutdown."""
    with _RedisClients.lock:
        clients = list(_RedisClients.clients.values())
        _RedisClients.clients.clear()
    for client in clients:
        await client.aclose()


class RedisSessionStore(SessionStore):
    """Redis-backed store for a single browser session.

    Parameters
    ----------
    session_id : str
        The browser session identifier.
    redis_url : str
        Redis connection URL (ignored when *redis_client* is given). The
        client for a URL is shared by every store of the process.
    prefix : str
        Key prefix for namespacing (default "oidc_session").
    ttl : int or None
        Sliding expiry in seconds, refreshed on every write.
    redis_client : Redis, optional
        Pre-configured Redis client (shared pool, or fakeredis in tests).
    """

    def __init__(
        self,
        session_id: str,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "oidc_session",
        ttl: int | None = None,
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize the Redis session store."""
        self.session_id = session_id
        self._prefix = prefix
        self._ttl = ttl
        self._redis: Any = redis_client or get_redis_client(redis_url)

    @property
    def key(self) -> str:
        """The Redis hash key of this session."""
        return f"{self._prefix}:oidc:session:{self.session_id}"

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the session hash."""
        data = await self._redis.hget(self.key, key)
        if data is None:
            return default
        return json.loads(data)

    async def set(self, key: str, value: Any) -> None:
        """Set or delete a value in the session hash."""
        if value is None:
            await self._redis.hdel(self.key, key)
            return
        await self._redis.hset(self.key, key, json.dumps(value))
        if self._ttl:
            await self._redis.expire(self.key, self._ttl)

    async def clear_all(self) -> None:
        """Delete the whole session hash."""
        await self._redis.delete(self.key)
