"""FastAPI adapter for the OAuth session lifecycle.

Provides a request dependency that builds a ``SessionLifecycle`` per
request, and login, callback, logout and userinfo routes. The host
application must install Starlette's ``SessionMiddleware``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import secrets

from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.routing import NoMatchFound

from ..log import set_level
from ..state._factory import get_session_store
from ..state.base import SessionRecord, SessionStore
from ..state.types import InboundRequest
from .destination import AbsoluteDestination, ReturnDestinationResolver
from .lifecycle import SessionLifecycle
from .links import StarletteLinkBuilder


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..config import OIDCSettings
    from ..log import DiagnosticsSink
    from .providers import IdentityProviderClient


logger = logging.getLogger("oidc_session.auth")


def _verify_csrf_origin(request: Request) -> bool:
    """Check that a state-changing request comes from our own origin.

    The ``Origin`` header is checked first, then ``Referer``. Requests
    carrying neither are rejected.
    """
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    source_origin: str | None = None
    if origin and origin != "null":
        source_origin = origin.rstrip("/")
    elif referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            source_origin = f"{parsed.scheme}://{parsed.netloc}"

    if source_origin is None:
        return False
    return source_origin == f"{request.url.scheme}://{request.url.netloc}"


class _DeferredSessionStore(SessionStore):
    """Issues the browser session id on the first write.

    Until then reads return defaults, so anonymous requests leave no
    trace in the backend or the session cookie.
    """

    def __init__(
        self,
        request: Request,
        session_id_key: str,
        open_store: Callable[[str], SessionStore],
    ) -> None:
        self.request = request
        self.session_id_key = session_id_key
        self.open_store = open_store
        self._store: SessionStore | None = None

    async def get(self, key: str, default: Any = None) -> Any:
        if self._store is None:
            return default
        return await self._store.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        if self._store is None:
            if value is None:
                return
            session_id = secrets.token_urlsafe(32)
            self.request.session[self.session_id_key] = session_id
            self._store = self.open_store(session_id)
        await self._store.set(key, value)

    async def clear_all(self) -> None:
        if self._store is not None:
            await self._store.clear_all()


def _session_store(
    request: Request,
    settings: OIDCSettings,
    redis_client: Any,
) -> SessionStore:
    if settings.session_backend == "cookie":
        return get_session_store(
            "cookie",
            connection=request,
            section=settings.cookie_section,
        )

    def open_store(session_id: str) -> SessionStore:
        return get_session_store(
            settings.session_backend,
            session_id=session_id,
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
            ttl=settings.session_ttl_seconds,
            redis_client=redis_client,
        )

    session_id = request.session.get(settings.session_id_key)
    if session_id:
        return open_store(session_id)
    return _DeferredSessionStore(request, settings.session_id_key, open_store)


def create_session_dependency(
    settings: OIDCSettings,
    provider: IdentityProviderClient,
    *,
    redis_client: Any = None,
    diagnostics: DiagnosticsSink | None = None,
) -> Callable[[Request], Awaitable[SessionLifecycle]]:
    """Create a FastAPI dependency yielding the request's SessionLifecycle.

    Parameters
    ----------
    settings : OIDCSettings
        Validated configuration.
    provider : IdentityProviderClient
        Shared provider client.
    redis_client : Redis, optional
        Shared Redis client for the redis backend.
    diagnostics : DiagnosticsSink, optional
        Receives absorbed errors.

    Returns
    -------
    callable
        ``async def (request) -> SessionLifecycle`` for use with ``Depends``.
    """
    configured = settings.return_destination

    async def get_session_lifecycle(request: Request) -> SessionLifecycle:
        record = SessionRecord(_session_store(request, settings, redis_client))
        inbound = await InboundRequest.from_starlette(request)

        destination = configured
        if destination is None:
            try:
                destination = AbsoluteDestination(str(request.url_for("auth_callback")))
            except NoMatchFound:
                destination = None

        resolver = None
        if destination is not None:
            resolver = ReturnDestinationResolver(destination, StarletteLinkBuilder(request))

        return SessionLifecycle(
            record,
            inbound,
            provider,
            resolver,
            diagnostics,
            expiry_margin=settings.expiry_margin_seconds,
        )

    return get_session_lifecycle


def create_auth_router(
    settings: OIDCSettings,
    provider: IdentityProviderClient,
    *,
    redis_client: Any = None,
    diagnostics: DiagnosticsSink | None = None,
) -> APIRouter:
    """Create a FastAPI router with the OAuth session routes.

    Parameters
    ----------
    settings : OIDCSettings
        Validated configuration.
    provider : IdentityProviderClient
        The configured identity provider client.
    redis_client : Redis, optional
        Shared Redis client for the redis backend.
    diagnostics : DiagnosticsSink, optional
        Receives absorbed errors.

    Returns
    -------
    APIRouter
        Router with ``/auth/*`` routes.
    """
    set_level(settings.log_level)
    router = APIRouter(prefix="/auth", tags=["authentication"])
    session_dependency = create_session_dependency(
        settings,
        provider,
        redis_client=redis_client,
        diagnostics=diagnostics,
    )

    @router.get("/login")
    async def auth_login(
        lifecycle: SessionLifecycle = Depends(session_dependency),  # noqa: B008
    ) -> Response:
        """Redirect to the provider's authorization page."""
        authorize_url = await lifecycle.create_login_url()
        return RedirectResponse(url=authorize_url, status_code=302)

    @router.get("/callback")
    async def auth_callback(
        error: str | None = None,
        error_description: str | None = None,
        lifecycle: SessionLifecycle = Depends(session_dependency),  # noqa: B008
    ) -> Response:
        """Complete the login started by ``/auth/login``."""
        if error:
            return JSONResponse(
                status_code=400,
                content={
                    "error": error,
                    "error_description": error_description or "Authentication failed",
                },
            )

        user_id = await lifecycle.get_user()
        if user_id:
            logger.info("User %s authenticated via %s", user_id, provider.name)
        return JSONResponse(content={"authenticated": bool(user_id), "user_id": user_id})

    @router.post("/logout")
    async def auth_logout(
        request: Request,
        lifecycle: SessionLifecycle = Depends(session_dependency),  # noqa: B008
    ) -> Response:
        """Log out, clearing the OAuth record when configured to."""
        if not _verify_csrf_origin(request):
            return JSONResponse(
                status_code=403,
                content={
                    "error": "csrf_failed",
                    "error_description": "Origin verification failed",
                },
            )

        if settings.clear_all_with_logout:
            await lifecycle.destroy()
        return RedirectResponse(url="/", status_code=303)

    @router.get("/me")
    async def auth_me(
        lifecycle: SessionLifecycle = Depends(session_dependency),  # noqa: B008
    ) -> JSONResponse:
        """Return the current user's id and ID-token claims."""
        user_id = await lifecycle.get_user()
        if not user_id:
            return JSONResponse(status_code=401, content={"error": "not_authenticated"})
        return JSONResponse(
            content={"user_id": user_id, "claims": await lifecycle.get_id_token()},
        )

    return router
