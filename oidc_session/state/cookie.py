"""Session store over Starlette's signed-cookie session.

Requires ``starlette.middleware.sessions.SessionMiddleware`` on the
application so that ``request.session`` is available.
"""

from __future__ import annotations

import copy

from typing import TYPE_CHECKING, Any

from .base import SessionStore


if TYPE_CHECKING:
    from starlette.requests import HTTPConnection


class CookieSessionStore(SessionStore):
    """Keeps the OAuth record in one section of ``request.session``.

    Parameters
    ----------
    connection : HTTPConnection
        The current Starlette request or websocket.
    section : str
        Name of the session sub-dict (default "oidc").
    """

    def __init__(self, connection: HTTPConnection, section: str = "oidc") -> None:
        self._session: dict[str, Any] = connection.session
        self.section = section

    def _data(self) -> dict[str, Any]:
        return self._session.setdefault(self.section, {})

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the cookie section."""
        data = self._session.get(self.section) or {}
        if key not in data:
            return default
        return copy.deepcopy(data[key])

    async def set(self, key: str, value: Any) -> None:
        """Set or remove a value in the cookie section."""
        data = self._data()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = copy.deepcopy(value)

    async def clear_all(self) -> None:
        """Drop the whole section."""
        self._session.pop(self.section, None)
