"""Tests unitarios para la cola de órdenes y el consumidor de eventos."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from fulfillment_sync.domain.models import OrderStateTransitionEvent
from fulfillment_sync.services.order_sync_queue import OrderStateTransitionConsumer, OrderSyncQueue


@pytest.fixture
def order_sync():
    service = MagicMock()
    service.sync_order = AsyncMock()
    return service


def transition(order_id: str, to_state: str) -> OrderStateTransitionEvent:
    return OrderStateTransitionEvent(order_id=order_id, from_state="ArrangingPayment", to_state=to_state)


class TestOrderSyncQueue:
    """Tests para la cola de sincronización."""

    @pytest.mark.asyncio
    async def test_worker_processes_queued_orders(self, order_sync):
        """Debe sincronizar cada orden encolada en orden de llegada."""
        queue = OrderSyncQueue(order_sync, maxsize=10)
        await queue.start()

        queue.enqueue("1")
        queue.enqueue("2")
        await queue.join()
        await queue.stop()

        assert [c.args[0] for c in order_sync.sync_order.await_args_list] == ["1", "2"]
        assert queue.stats["processed"] == 2
        assert queue.is_running is False

    def test_duplicate_order_not_enqueued_twice(self, order_sync):
        """No debe encolar dos veces una orden pendiente."""
        queue = OrderSyncQueue(order_sync, maxsize=10)

        assert queue.enqueue("1") is True
        assert queue.enqueue("1") is False
        assert queue.get_status()["queued"] == 1

    def test_full_queue_drops_order(self, order_sync):
        """Debe descartar y contabilizar órdenes cuando la cola está llena."""
        queue = OrderSyncQueue(order_sync, maxsize=1)

        queue.enqueue("1")

        assert queue.enqueue("2") is False
        assert queue.stats["dropped"] == 1

    @pytest.mark.asyncio
    async def test_worker_survives_sync_errors(self, order_sync):
        """Debe seguir procesando aunque una sincronización falle."""
        order_sync.sync_order.side_effect = [RuntimeError("boom"), None]
        queue = OrderSyncQueue(order_sync, maxsize=10)
        await queue.start()

        queue.enqueue("1")
        queue.enqueue("2")
        await queue.join()
        await queue.stop()

        assert order_sync.sync_order.await_count == 2
        assert queue.stats["processed"] == 1


class TestOrderStateTransitionConsumer:
    """Tests para el consumidor de transiciones de estado."""

    @pytest.mark.asyncio
    async def test_trigger_state_enqueues(self, config_store, order_sync):
        """Debe encolar la orden al entrar en un estado disparador."""
        queue = OrderSyncQueue(order_sync, maxsize=10)
        consumer = OrderStateTransitionConsumer(config_store, queue)

        assert await consumer.handle(transition("1", "PaymentSettled")) is True
        assert queue.get_status()["queued"] == 1

    @pytest.mark.asyncio
    async def test_other_state_ignored(self, config_store, order_sync):
        """Debe ignorar transiciones a estados no disparadores."""
        queue = OrderSyncQueue(order_sync, maxsize=10)
        consumer = OrderStateTransitionConsumer(config_store, queue)

        assert await consumer.handle(transition("1", "Cancelled")) is False
        assert queue.get_status()["queued"] == 0

    @pytest.mark.asyncio
    async def test_disabled_config_ignores_events(self, config_store, order_sync):
        """Debe ignorar eventos con la sincronización deshabilitada."""
        await config_store.update(enabled=False)
        queue = OrderSyncQueue(order_sync, maxsize=10)
        consumer = OrderStateTransitionConsumer(config_store, queue)

        assert await consumer.handle(transition("1", "PaymentSettled")) is False

    @pytest.mark.asyncio
    async def test_uses_current_trigger_states(self, config_store, order_sync):
        """Debe usar los estados disparadores del snapshot vigente."""
        await config_store.update(order_sync_trigger_states=["PaymentAuthorized"])
        queue = OrderSyncQueue(order_sync, maxsize=10)
        consumer = OrderStateTransitionConsumer(config_store, queue)

        assert await consumer.handle(transition("1", "PaymentSettled")) is False
        assert await consumer.handle(transition("2", "PaymentAuthorized")) is True
