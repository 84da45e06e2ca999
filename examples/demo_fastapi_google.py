"""Demo: Google sign-in for a FastAPI app with oidc-session.

Demonstrates the documented patterns:

- ``get_settings()`` for layered configuration
- ``create_auth_router()`` for the login, callback, logout and me routes
- ``create_session_dependency()`` to use ``SessionLifecycle`` in your own routes

Setup
-----
1. Create a Google OAuth2 client at https://console.cloud.google.com/apis/credentials
2. Set the authorized redirect URI to ``http://127.0.0.1:8000/auth/callback``.
3. Export the credentials::

       export OIDC_SESSION__CLIENT_ID="your-client-id.apps.googleusercontent.com"
       export OIDC_SESSION__CLIENT_SECRET="your-client-secret"

4. Run::

       uvicorn examples.demo_fastapi_google:app
"""

from __future__ import annotations

import contextlib
import os

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, FastAPI
from starlette.middleware.sessions import SessionMiddleware

from oidc_session import (
    SessionLifecycle,
    close_session_stores,
    create_auth_router,
    create_provider_from_settings,
    create_session_dependency,
    get_settings,
)


settings = get_settings()
provider = create_provider_from_settings(settings)
get_session = create_session_dependency(settings, provider)


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    await provider.close()
    await close_session_stores()


app = FastAPI(title="oidc-session demo", lifespan=lifespan)
app.add_middleware(SessionMiddleware, secret_key=os.environ.get("DEMO_SECRET_KEY", "change-me"))
app.include_router(create_auth_router(settings, provider))


@app.get("/")
async def index(lifecycle: SessionLifecycle = Depends(get_session)) -> dict[str, Any]:  # noqa: B008
    """Greet the signed-in user or point to the login route."""
    user_id = await lifecycle.get_user()
    if not user_id:
        return {"message": "Not signed in", "login": "/auth/login"}
    return {
        "message": f"Hello {await lifecycle.get_id_token('name') or user_id}",
        "email": await lifecycle.get_id_token("email"),
    }
