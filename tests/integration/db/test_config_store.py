"""Tests de SyncConfigStore contra PostgreSQL."""

import asyncio
from datetime import UTC, datetime

import pytest

from fulfillment_sync.core.config import Settings
from fulfillment_sync.db.config_store import SyncConfigStore
from fulfillment_sync.utils.error_handler import ConfigurationException, ValidationException


@pytest.fixture
def store(session_factory):
    return SyncConfigStore(session_factory)


@pytest.fixture
def app_settings():
    return Settings(
        _env_file=None,
        FULFILLMENT_API_URL="https://fulfillment.test",
        FULFILLMENT_CLIENT_ID="client-id",
        FULFILLMENT_CLIENT_SECRET="client-secret",
        FULFILLMENT_COMPANY_ID="COMPANY-1",
        ORDER_SYNC_TRIGGER_STATES="PaymentSettled,PaymentAuthorized",
    )


class TestInitialization:
    @pytest.mark.asyncio
    async def test_load_before_init_raises(self, store):
        """Debe lanzar ConfigurationException si no existe la fila."""
        with pytest.raises(ConfigurationException):
            await store.load()

    @pytest.mark.asyncio
    async def test_ensure_initialized_seeds_from_settings(self, store, app_settings):
        """Debe crear la fila con los valores de arranque una sola vez."""
        created = await store.ensure_initialized(app_settings)
        again = await store.ensure_initialized(app_settings)

        assert created.version == 1
        assert created.company_id == "COMPANY-1"
        assert created.order_sync_trigger_states == ["PaymentSettled", "PaymentAuthorized"]
        assert created.access_token is None
        assert again == created


class TestUpdate:
    """Tests para el único camino de escritura."""

    @pytest.mark.asyncio
    async def test_update_bumps_version_and_keeps_other_fields(self, store, app_settings):
        """Debe incrementar version y dejar intactos los campos no tocados."""
        await store.ensure_initialized(app_settings)
        expires_at = datetime(2026, 3, 2, 13, 0, tzinfo=UTC)

        first = await store.update(access_token="token-1", token_expires_at=expires_at)
        second = await store.update(enabled=False)

        assert first.version == 2
        assert second.version == 3
        assert second.access_token == "token-1"
        assert second.token_expires_at == expires_at
        assert second.enabled is False
        assert (await store.load()) == second

    @pytest.mark.asyncio
    async def test_concurrent_updates_keep_both_fields(self, store, app_settings):
        """Debe conservar los cambios de dos escritores sobre campos distintos."""
        await store.ensure_initialized(app_settings)

        await asyncio.gather(
            store.update(access_token="token-2"),
            store.update(tracking_interval_minutes=15),
        )
        config = await store.load()

        assert config.access_token == "token-2"
        assert config.tracking_interval_minutes == 15
        assert config.version == 3

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, store, app_settings):
        """Debe rechazar campos que no son configurables."""
        await store.ensure_initialized(app_settings)

        with pytest.raises(ValidationException):
            await store.update(version=99)

    @pytest.mark.asyncio
    async def test_update_before_init_raises(self, store):
        """Debe lanzar ConfigurationException si no existe la fila."""
        with pytest.raises(ConfigurationException):
            await store.update(enabled=False)
