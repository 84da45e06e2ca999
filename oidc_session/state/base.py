"""Abstract base classes for pluggable session storage.

A ``SessionStore`` is scoped to exactly one browser session. The
``SessionRecord`` facade restricts access to the OAuth fields.
"""

# pylint: disable=unnecessary-ellipsis

from __future__ import annotations

import logging

from abc import ABC, abstractmethod
from typing import Any

from .types import NO_USER, SessionField, SessionSnapshot


logger = logging.getLogger("oidc_session.state")


class SessionStore(ABC):
    """Abstract per-browser-session key/value storage.

    All methods are async to support both local and network-backed stores.
    """

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Get the value stored under *key*.

        Parameters
        ----------
        key : str
            The field name.
        default : Any
            Returned when nothing is stored under *key*.

        Returns
        -------
        Any
            The stored value or *default*.
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        key : str
            The field name.
        value : Any
            A JSON-serializable value. ``None`` removes the key.
        """
        ...

    @abstractmethod
    async def clear_all(self) -> None:
        """Remove every key of this session."""
        ...


class SessionRecord:
    """Typed facade over a SessionStore holding the OAuth session fields.

    Parameters
    ----------
    store : SessionStore
        The browser-session scoped backing store.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def get(self, field: SessionField, default: Any = None) -> Any:
        """Read one field."""
        if field is SessionField.USER_ID and default is None:
            default = NO_USER
        return await self.store.get(field.value, default)

    async def set(self, field: SessionField, value: Any) -> None:
        """Write one field. ``None`` clears it."""
        logger.debug("Session field %s %s", field.value, "cleared" if value is None else "set")
        await self.store.set(field.value, value)

    async def clear_all(self) -> None:
        """Invalidate every field of the record."""
        logger.debug("Session record cleared")
        await self.store.clear_all()

    async def snapshot(self) -> SessionSnapshot:
        """Return a copy of all fields."""
        return SessionSnapshot(
            code=await self.get(SessionField.CODE),
            state=await self.get(SessionField.STATE),
            access_token=await self.get(SessionField.ACCESS_TOKEN),
            refresh_token=await self.get(SessionField.REFRESH_TOKEN),
            token_payload=await self.get(SessionField.TOKEN_PAYLOAD),
            rejected_id_token=await self.get(SessionField.REJECTED_ID_TOKEN),
            user_id=await self.get(SessionField.USER_ID),
        )
