"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import os

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from oidc_session.config import clear_settings
from oidc_session.state import MemorySessionStore, SessionRecord, reset_session_stores
from oidc_session.state.types import InboundRequest


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


# ── Isolation ───────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Keep configuration files, env vars and process-wide stores out of tests."""
    for name in list(os.environ):
        if name.startswith("OIDC_SESSION"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings()
    reset_session_stores()
    yield
    clear_settings()
    reset_session_stores()


# ── Doubles ─────────────────────────────────────────────────────────


class RecordingDiagnostics:
    """DiagnosticsSink collecting absorbed errors."""

    def __init__(self) -> None:
        self.errors: list[tuple[BaseException, str]] = []

    def log(self, error: BaseException, channel: str) -> None:
        self.errors.append((error, channel))


@pytest.fixture()
def diagnostics() -> RecordingDiagnostics:
    """Create a recording diagnostics sink."""
    return RecordingDiagnostics()


@pytest.fixture()
def mock_provider() -> MagicMock:
    """Create a mock identity provider client."""
    provider = MagicMock()
    provider.name = "MockProvider"
    provider.exchange_code = AsyncMock(return_value={"access_token": "T1", "refresh_token": "R1"})
    provider.refresh = AsyncMock(return_value='{"access_token": "T2"}')
    provider.verify_id_token = AsyncMock(return_value=None)
    provider.fetch_profile = AsyncMock(return_value="u1")
    provider.fetch_userinfo = AsyncMock(return_value={"sub": "u1", "email": "u1@test.com"})
    provider.build_authorize_url.return_value = "https://idp.test/authorize?state=x"
    return provider


@pytest.fixture()
def store() -> MemorySessionStore:
    """Create an empty memory store."""
    return MemorySessionStore()


@pytest.fixture()
def record(store: MemorySessionStore) -> SessionRecord:
    """Create a session record over the memory store."""
    return SessionRecord(store)


@pytest.fixture()
def empty_request() -> InboundRequest:
    """Create a request without parameters."""
    return InboundRequest()
