"""In-memory session store for development and single-process use."""

from __future__ import annotations

import asyncio
import copy
import threading
import time

from typing import TYPE_CHECKING, Any

from .base import SessionStore


if TYPE_CHECKING:
    from collections.abc import Callable


class MemorySessionStore(SessionStore):
    """Dict-backed session store.

    Values are deep-copied on the way in and out so callers never
    share mutable state with the store, matching the isolation a
    serializing backend gives.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        """Initialize the memory store."""
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value from memory."""
        async with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        """Set or remove a value in memory."""
        async with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = copy.deepcopy(value)

    async def clear_all(self) -> None:
        """Drop all values."""
        async with self._lock:
            self._data.clear()

    def dump(self) -> dict[str, Any]:
        """Return a copy of the raw contents (for inspection in tests)."""
        return copy.deepcopy(self._data)


class MemorySessionRegistry:
    """Process-wide in-memory records keyed by browser session id.

    Only sessions holding at least one value occupy memory: clearing a
    session or removing its last field drops it, and sessions not
    written for ``ttl`` seconds expire.

    Parameters
    ----------
    ttl : int or None
        Sliding expiry in seconds, refreshed on every write.
    clock : callable
        Returns the current epoch time.
    """

    def __init__(self, ttl: int | None = None, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, dict[str, Any]] = {}
        self._written_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._sessions)

    def store(self, session_id: str) -> RegisteredMemorySessionStore:
        """Return a store handle for *session_id*."""
        return RegisteredMemorySessionStore(self, session_id)

    def read(self, session_id: str, key: str, default: Any = None) -> Any:
        """Read one value of a session."""
        with self._lock:
            if self._is_expired(session_id):
                self._drop(session_id)
            data = self._sessions.get(session_id)
            if data is None or key not in data:
                return default
            return copy.deepcopy(data[key])

    def write(self, session_id: str, key: str, value: Any) -> None:
        """Write one value of a session (``None`` removes it)."""
        with self._lock:
            self._purge_expired()
            if value is None:
                data = self._sessions.get(session_id)
                if data is not None:
                    data.pop(key, None)
                    if not data:
                        self._drop(session_id)
                return
            self._sessions.setdefault(session_id, {})[key] = copy.deepcopy(value)
            self._written_at[session_id] = self._clock()

    def discard(self, session_id: str) -> None:
        """Forget a session entirely."""
        with self._lock:
            self._drop(session_id)

    def clear(self) -> None:
        """Forget every session."""
        with self._lock:
            self._sessions.clear()
            self._written_at.clear()

    def _is_expired(self, session_id: str) -> bool:
        written_at = self._written_at.get(session_id)
        return bool(self.ttl) and written_at is not None and written_at + self.ttl < self._clock()

    def _purge_expired(self) -> None:
        if not self.ttl:
            return
        for session_id in [sid for sid in self._written_at if self._is_expired(sid)]:
            self._drop(session_id)

    def _drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._written_at.pop(session_id, None)


class RegisteredMemorySessionStore(SessionStore):
    """Store handle on one session of a MemorySessionRegistry."""

    def __init__(self, registry: MemorySessionRegistry, session_id: str) -> None:
        self.registry = registry
        self.session_id = session_id

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the registry."""
        return self.registry.read(self.session_id, key, default)

    async def set(self, key: str, value: Any) -> None:
        """Set or remove a value in the registry."""
        self.registry.write(self.session_id, key, value)

    async def clear_all(self) -> None:
        """Drop the session from the registry."""
        self.registry.discard(self.session_id)
