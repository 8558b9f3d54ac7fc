"""Tests unitarios para TokenManager."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from sqlalchemy.exc import SQLAlchemyError

from fulfillment_sync.db.token_manager import TokenManager
from fulfillment_sync.utils.error_handler import FulfillmentAPIException

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture
def expired_store(config_store):
    config_store.config = config_store.config.model_copy(update={"access_token": None, "token_expires_at": None})
    return config_store


class TestTokenManager:
    """Tests para obtención y renovación del token."""

    @pytest.mark.asyncio
    async def test_refreshes_and_persists_token(self, expired_store):
        """Debe pedir un token nuevo y persistirlo con expiración expires_in - 300s."""
        manager = TokenManager(expired_store, expiry_margin_seconds=300)
        manager._request_token = AsyncMock(return_value={"access_token": "new-token", "expires_in": 3600})

        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=NOW):
            token = await manager.get_valid_token()

        assert token == "new-token"
        assert expired_store.config.access_token == "new-token"
        assert expired_store.config.token_expires_at == NOW + timedelta(seconds=3300)
        assert expired_store.config.version == 2

    @pytest.mark.asyncio
    async def test_reuses_token_before_expiry(self, expired_store):
        """Debe reutilizar el token para requests antes de now + 3300s."""
        manager = TokenManager(expired_store, expiry_margin_seconds=300)
        manager._request_token = AsyncMock(return_value={"access_token": "new-token", "expires_in": 3600})

        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=NOW):
            await manager.get_valid_token()

        almost_expired = NOW + timedelta(seconds=3299)
        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=almost_expired):
            token = await manager.get_valid_token()

        assert token == "new-token"
        manager._request_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refreshes_at_expiry_instant(self, expired_store):
        """Debe renovar el token en el instante exacto de expiración."""
        manager = TokenManager(expired_store, expiry_margin_seconds=300)
        manager._request_token = AsyncMock(
            side_effect=[
                {"access_token": "first-token", "expires_in": 3600},
                {"access_token": "second-token", "expires_in": 3600},
            ]
        )

        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=NOW):
            await manager.get_valid_token()

        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=NOW + timedelta(seconds=3300)):
            token = await manager.get_valid_token()

        assert token == "second-token"
        assert manager._request_token.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            aiohttp.ClientConnectionError("connection refused"),
            FulfillmentAPIException("Token request failed with HTTP 401", api_response_code=401),
        ],
    )
    async def test_refresh_failure_returns_none(self, expired_store, error):
        """Debe devolver None sin tocar la configuración si la renovación falla."""
        manager = TokenManager(expired_store)
        manager._request_token = AsyncMock(side_effect=error)

        token = await manager.get_valid_token()

        assert token is None
        assert expired_store.updates == []

    @pytest.mark.asyncio
    async def test_missing_access_token_in_response(self, expired_store):
        """Debe tratar una respuesta sin access_token como falla."""
        manager = TokenManager(expired_store)
        manager._request_token = AsyncMock(return_value={"token_type": "bearer"})

        assert await manager.get_valid_token() is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            ["unexpected"],
            {"access_token": "t", "expires_in": "soon"},
            {"access_token": None, "expires_in": 3600},
        ],
    )
    async def test_malformed_response_returns_none(self, expired_store, response):
        """Debe devolver None sin guardar nada si la respuesta de token es inválida."""
        manager = TokenManager(expired_store)
        manager._request_token = AsyncMock(return_value=response)

        assert await manager.get_valid_token() is None
        assert expired_store.updates == []

    @pytest.mark.asyncio
    async def test_null_expires_in_uses_default_lifetime(self, expired_store):
        """Debe asumir 3600s de vida si expires_in viene en null."""
        manager = TokenManager(expired_store, expiry_margin_seconds=300)
        manager._request_token = AsyncMock(return_value={"access_token": "t", "expires_in": None})

        with patch("fulfillment_sync.db.token_manager.utc_now", return_value=NOW):
            token = await manager.get_valid_token()

        assert token == "t"
        assert expired_store.config.token_expires_at == NOW + timedelta(seconds=3300)

    @pytest.mark.asyncio
    async def test_persist_failure_returns_none(self, expired_store):
        """Debe devolver None si no se pudo guardar el token renovado."""
        manager = TokenManager(expired_store)
        manager._request_token = AsyncMock(return_value={"access_token": "new-token", "expires_in": 3600})
        expired_store.update = AsyncMock(side_effect=SQLAlchemyError("database unavailable"))

        assert await manager.get_valid_token() is None
