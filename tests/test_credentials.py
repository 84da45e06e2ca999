"""Tests for the access token precedence chain."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from oidc_session.auth.credentials import CHANNEL, CredentialResolver
from oidc_session.exceptions import InputError, TokenExchangeError, TokenRefreshError
from oidc_session.state import SessionField, SessionRecord, SessionSnapshot


NOW = 1_700_000_000.0


# ── Fixtures ────────────────────────────────────────────────────────


def _resolver(
    record: SessionRecord,
    provider: MagicMock,
    diagnostics: Any,
    code: str | None = None,
) -> CredentialResolver:
    return CredentialResolver(
        record,
        provider,
        code_source=AsyncMock(return_value=code),
        redirect_uri=lambda: "https://app.test/cb",
        diagnostics=diagnostics,
        clock=lambda: NOW,
    )


# ── Authorization code ──────────────────────────────────────────────


class TestCodeExchange:
    """Tests for the authorization-code path."""

    @pytest.mark.asyncio
    async def test_exchange_persists_record(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """A new code is exchanged and the record updated."""
        await record.set(SessionField.TOKEN_PAYLOAD, {"sub": "old"})
        await record.set(SessionField.REJECTED_ID_TOKEN, "old.id.token")
        await record.set(SessionField.USER_ID, "old-user")

        token = await _resolver(record, mock_provider, diagnostics, code="abc").resolve_access_token()

        assert token == {"access_token": "T1", "refresh_token": "R1"}
        mock_provider.exchange_code.assert_awaited_once_with("abc", "https://app.test/cb")
        assert await record.snapshot() == SessionSnapshot(
            code="abc",
            access_token={"access_token": "T1", "refresh_token": "R1"},
            refresh_token="R1",
        )

    @pytest.mark.asyncio
    async def test_exchange_without_refresh_token_clears_it(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """A token without refresh_token removes the stored one."""
        await record.set(SessionField.REFRESH_TOKEN, "R-old")
        mock_provider.exchange_code.return_value = {"access_token": "T1"}
        await _resolver(record, mock_provider, diagnostics, code="abc").resolve_access_token()
        assert await record.get(SessionField.REFRESH_TOKEN) is None

    @pytest.mark.asyncio
    async def test_same_code_not_exchanged_twice(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """A code equal to the stored one falls through to the stored token."""
        await record.set(SessionField.CODE, "abc")
        await record.set(SessionField.ACCESS_TOKEN, {"access_token": "T0"})
        token = await _resolver(record, mock_provider, diagnostics, code="abc").resolve_access_token()
        assert token == {"access_token": "T0"}
        mock_provider.exchange_code.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome",
        [
            TokenExchangeError("invalid_grant", provider="MockProvider"),
            {},
            {"token_type": "Bearer"},
            "not-a-mapping",
        ],
    )
    async def test_exchange_failure_clears_record(
        self,
        record: SessionRecord,
        mock_provider: MagicMock,
        diagnostics: Any,
        outcome: Any,
    ) -> None:
        """Any exchange failure is logged and invalidates the session."""
        await record.set(SessionField.REFRESH_TOKEN, "R1")
        if isinstance(outcome, Exception):
            mock_provider.exchange_code.side_effect = outcome
        else:
            mock_provider.exchange_code.return_value = outcome

        token = await _resolver(record, mock_provider, diagnostics, code="abc").resolve_access_token()

        assert token is None
        assert await record.snapshot() == SessionSnapshot()
        assert len(diagnostics.errors) == 1
        assert diagnostics.errors[0][1] == CHANNEL
        mock_provider.refresh.assert_not_awaited()


# ── Refresh ─────────────────────────────────────────────────────────


class TestRefresh:
    """Tests for the refresh path."""

    @pytest.mark.asyncio
    async def test_refresh_reattaches_refresh_token(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """The refreshed token carries the stored refresh token and code is cleared."""
        await record.set(SessionField.REFRESH_TOKEN, "R1")
        await record.set(SessionField.CODE, "old-code")

        token = await _resolver(record, mock_provider, diagnostics).resolve_access_token()

        assert token == {"access_token": "T2", "refresh_token": "R1"}
        mock_provider.refresh.assert_awaited_once_with("R1")
        snapshot = await record.snapshot()
        assert snapshot.code is None
        assert snapshot.access_token == token
        assert snapshot.refresh_token == "R1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome",
        [
            TokenRefreshError("invalid_grant", provider="MockProvider"),
            ConnectionError("network down"),
            "",
            "{not json",
            "[1, 2]",
            '{"token_type": "Bearer"}',
        ],
    )
    async def test_refresh_failure_clears_record(
        self,
        record: SessionRecord,
        mock_provider: MagicMock,
        diagnostics: Any,
        outcome: Any,
    ) -> None:
        """Revoked grants, network errors and malformed JSON log out."""
        await record.set(SessionField.REFRESH_TOKEN, "R1")
        await record.set(SessionField.USER_ID, "u1")
        if isinstance(outcome, Exception):
            mock_provider.refresh.side_effect = outcome
        else:
            mock_provider.refresh.return_value = outcome

        token = await _resolver(record, mock_provider, diagnostics).resolve_access_token()

        assert token is None
        assert await record.snapshot() == SessionSnapshot()
        assert len(diagnostics.errors) == 1

    @pytest.mark.asyncio
    async def test_nothing_stored(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """Without code, token or refresh token there is nothing to return."""
        assert await _resolver(record, mock_provider, diagnostics).resolve_access_token() is None
        mock_provider.refresh.assert_not_awaited()


# ── Expiry and fallback ─────────────────────────────────────────────


class TestStoredToken:
    """Tests for the expiry check and fallback."""

    @pytest.mark.asyncio
    async def test_expired_token_clears_record(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """created + expires_in - 30 < now invalidates the session."""
        await record.set(
            SessionField.ACCESS_TOKEN,
            {"access_token": "T1", "created": NOW - 3571, "expires_in": 3600},
        )
        await record.set(SessionField.REFRESH_TOKEN, "R1")

        assert await _resolver(record, mock_provider, diagnostics).resolve_access_token() is None
        assert await record.snapshot() == SessionSnapshot()
        assert not diagnostics.errors

    @pytest.mark.asyncio
    async def test_token_within_margin_is_valid(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """A token not yet inside the margin is returned."""
        stored = {"access_token": "T1", "created": NOW - 3570, "expires_in": 3600}
        await record.set(SessionField.ACCESS_TOKEN, stored)
        assert await _resolver(record, mock_provider, diagnostics).resolve_access_token() == stored

    @pytest.mark.asyncio
    async def test_token_without_expiry_never_expires(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """Tokens lacking created or expires_in are returned unmodified."""
        stored = {"access_token": "T1", "token_type": "Bearer"}
        await record.set(SessionField.ACCESS_TOKEN, stored)
        assert await _resolver(record, mock_provider, diagnostics).resolve_access_token() == stored

    @pytest.mark.asyncio
    async def test_stored_token_without_access_token(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """A corrupt stored token is logged and invalidates the session."""
        await record.set(SessionField.ACCESS_TOKEN, {"refresh_token": "R1"})
        assert await _resolver(record, mock_provider, diagnostics).resolve_access_token() is None
        assert await record.snapshot() == SessionSnapshot()
        assert isinstance(diagnostics.errors[0][0], InputError)

    @pytest.mark.asyncio
    async def test_custom_margin(
        self, record: SessionRecord, mock_provider: MagicMock, diagnostics: Any
    ) -> None:
        """The expiry margin is configurable."""
        await record.set(
            SessionField.ACCESS_TOKEN,
            {"access_token": "T1", "created": NOW - 3500, "expires_in": 3600},
        )
        resolver = _resolver(record, mock_provider, diagnostics)
        resolver.expiry_margin = 120
        assert await resolver.resolve_access_token() is None
