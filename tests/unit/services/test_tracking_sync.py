"""Tests unitarios para TrackingSyncService."""

import pytest

from fulfillment_sync.domain.models import RemoteOrderStatus, SyncRecord, SyncStatus
from fulfillment_sync.services.tracking_sync import TrackingSyncService
from fulfillment_sync.utils.error_handler import (
    FulfillmentAPIException,
    OrderNotFoundException,
    SyncAlreadyRunningException,
)


@pytest.fixture
def service(platform, client, record_store, config_store, job_lock):
    return TrackingSyncService(platform, client, record_store, config_store, lock=job_lock)


def synced_record(order_id: str, code: str) -> SyncRecord:
    return SyncRecord(
        local_order_id=order_id, local_order_code=code, status=SyncStatus.SUCCESS, remote_order_id=f"RC-{order_id}"
    )


@pytest.fixture
def synced_order(platform, record_store, order_factory):
    order = platform.add_order(order_factory(order_id="1", code="ORD-1001", state="PaymentSettled"))
    record_store.records["1"] = synced_record("1", "ORD-1001")
    return order


class TestSyncTracking:
    """Tests para la pasada de tracking."""

    @pytest.mark.asyncio
    async def test_records_tracking_and_ships_order(self, service, platform, client, record_store, synced_order):
        """Debe guardar el tracking, la metadata y transicionar a Shipped."""
        client.get_order_status.return_value = RemoteOrderStatus(
            status="Shipped", tracking_number="1Z999", carrier="UPS", ship_date="2026-03-02"
        )

        result = await service.sync_tracking()

        assert result.orders_checked == 1
        assert result.tracking_updated == 1
        assert platform.custom_field_updates == [
            ("1", {"trackingCode": "1Z999", "carrier": "UPS", "shipDate": "2026-03-02"})
        ]
        assert record_store.records["1"].metadata["tracking_info"]["tracking_number"] == "1Z999"
        assert platform.transitions == [("1", "Shipped")]
        client.get_order_status.assert_awaited_once_with("ORD-1001")

    @pytest.mark.asyncio
    async def test_no_tracking_number_is_skipped(self, service, platform, client, synced_order):
        """No debe actualizar la orden si el remoto aún no tiene tracking."""
        client.get_order_status.return_value = RemoteOrderStatus(status="Processing")

        result = await service.sync_tracking()

        assert result.orders_checked == 1
        assert result.tracking_updated == 0
        assert result.errors == 0
        assert platform.custom_field_updates == []

    @pytest.mark.asyncio
    async def test_same_tracking_code_is_noop(self, service, platform, client, record_store, order_factory):
        """No debe reescribir un tracking que ya coincide."""
        order = order_factory(custom_fields={"trackingCode": "1Z999"})
        platform.add_order(order)
        record_store.records["1"] = synced_record("1", order.code)
        client.get_order_status.return_value = RemoteOrderStatus(status="Shipped", tracking_number="1Z999")

        assert await service.sync_tracking_for_order("1") is False
        assert platform.custom_field_updates == []

    @pytest.mark.asyncio
    async def test_orders_with_tracking_are_not_candidates(self, service, platform, client, record_store, order_factory):
        """Debe excluir órdenes que ya tienen tracking o están fuera de los estados válidos."""
        platform.add_order(order_factory(order_id="1", custom_fields={"trackingCode": "1Z1"}))
        platform.add_order(order_factory(order_id="2", code="ORD-2", state="Cancelled"))
        record_store.records["1"] = synced_record("1", "ORD-1001")
        record_store.records["2"] = synced_record("2", "ORD-2")

        result = await service.sync_tracking()

        assert result.orders_checked == 0
        client.get_order_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsynced_orders_are_not_candidates(self, service, platform, client, record_store, order_factory):
        """Debe ignorar órdenes sin sincronización exitosa."""
        platform.add_order(order_factory())
        record_store.records["1"] = SyncRecord("1", "ORD-1001", status=SyncStatus.ERROR)

        result = await service.sync_tracking()

        assert result.orders_checked == 0

    @pytest.mark.asyncio
    async def test_transition_failure_keeps_tracking(self, service, platform, client, synced_order):
        """Debe contar el tracking como actualizado aunque falle la transición."""
        platform.fail_transition = True
        client.get_order_status.return_value = RemoteOrderStatus(status="Shipped", tracking_number="1Z999")

        result = await service.sync_tracking()

        assert result.tracking_updated == 1
        assert result.errors == 0
        assert synced_order.custom_fields["trackingCode"] == "1Z999"

    @pytest.mark.asyncio
    async def test_not_shipped_status_does_not_transition(self, service, platform, client, synced_order):
        """No debe transicionar si el remoto no reporta Shipped."""
        client.get_order_status.return_value = RemoteOrderStatus(status="Picked", tracking_number="1Z999")

        await service.sync_tracking()

        assert platform.transitions == []

    @pytest.mark.asyncio
    async def test_per_order_errors_are_counted(self, service, platform, client, record_store, order_factory):
        """Debe registrar errores por orden sin abortar la pasada."""
        platform.add_order(order_factory(order_id="1", code="ORD-1"))
        platform.add_order(order_factory(order_id="2", code="ORD-2"))
        record_store.records["1"] = synced_record("1", "ORD-1")
        record_store.records["2"] = synced_record("2", "ORD-2")
        client.get_order_status.side_effect = [
            FulfillmentAPIException("HTTP 404", api_response_code=404),
            RemoteOrderStatus(status="Shipped", tracking_number="1Z2"),
        ]

        result = await service.sync_tracking()

        assert result.orders_checked == 2
        assert result.errors == 1
        assert result.tracking_updated == 1
        assert result.details[0]["order_id"] == "1"

    @pytest.mark.asyncio
    async def test_updates_last_sync_time(self, service, config_store):
        """Debe registrar el momento de la última pasada."""
        await service.sync_tracking()

        assert config_store.config.last_tracking_sync_at is not None

    @pytest.mark.asyncio
    async def test_auth_failure_skips_cycle(self, service, client, config_store, synced_order):
        """Debe saltar la pasada si no hay autenticación."""
        client.ensure_authenticated.return_value = False

        result = await service.sync_tracking()

        assert result.orders_checked == 0
        client.get_order_status.assert_not_awaited()
        assert config_store.updates == []

    @pytest.mark.asyncio
    async def test_force_respects_lock(self, service, client, job_lock):
        """Debe rechazar un force mientras otra pasada tiene el lock."""
        await job_lock.acquire()

        with pytest.raises(SyncAlreadyRunningException):
            await service.force_tracking_sync()


class TestSingleOrder:
    """Tests para la sincronización de tracking de una orden."""

    @pytest.mark.asyncio
    async def test_unsynced_order_raises(self, service):
        """Debe lanzar OrderNotFoundException si la orden no fue sincronizada."""
        with pytest.raises(OrderNotFoundException):
            await service.sync_tracking_for_order("missing")

    @pytest.mark.asyncio
    async def test_single_order_update(self, service, client, synced_order):
        """Debe actualizar el tracking de la orden pedida."""
        client.get_order_status.return_value = RemoteOrderStatus(status="Shipped", tracking_number="1Z5")

        assert await service.sync_tracking_for_order("1") is True

    @pytest.mark.asyncio
    async def test_tracking_stats(self, service, client, synced_order):
        """Debe contar las órdenes con tracking registrado."""
        client.get_order_status.return_value = RemoteOrderStatus(status="Shipped", tracking_number="1Z5")
        await service.sync_tracking()

        stats = await service.get_tracking_stats()

        assert stats["total_orders_tracked"] == 1
        assert stats["is_running"] is False
        assert stats["last_sync_time"] is not None
