"""
Cola de sincronización de órdenes y consumidor de eventos de estado.

Los eventos de transición de estado de la plataforma local pasan por
``OrderStateTransitionConsumer``, que encola la orden si el estado destino
está entre los estados disparadores configurados. Un worker asyncio consume
la cola y ejecuta ``OrderSyncService.sync_order`` una orden a la vez.
"""

import asyncio
import logging
from typing import Optional

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.domain.models import OrderStateTransitionEvent
from fulfillment_sync.services.interfaces import ISyncConfigStore
from fulfillment_sync.services.order_sync import OrderSyncService

settings = get_settings()
logger = logging.getLogger(__name__)


class OrderSyncQueue:
    """
    Cola en memoria con un worker que sincroniza órdenes secuencialmente.
    """

    def __init__(self, order_sync_service: OrderSyncService, maxsize: Optional[int] = None):
        self.order_sync_service = order_sync_service
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize or settings.ORDER_SYNC_QUEUE_SIZE)
        self._queued: set[str] = set()
        self._worker_task: Optional[asyncio.Task] = None
        self.stats = {"enqueued": 0, "processed": 0, "dropped": 0}

    @property
    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def enqueue(self, order_id: str) -> bool:
        """
        Encola una orden para sincronizar.

        Returns:
            bool: False si ya estaba en cola o la cola está llena
        """
        if order_id in self._queued:
            logger.debug(f"Order {order_id} already queued for sync")
            return False

        try:
            self._queue.put_nowait(order_id)
        except asyncio.QueueFull:
            self.stats["dropped"] += 1
            logger.error(f"❌ Order sync queue full, order {order_id} dropped")
            return False

        self._queued.add(order_id)
        self.stats["enqueued"] += 1
        logger.info(f"📥 Order {order_id} queued for fulfillment sync")
        return True

    async def start(self):
        if self.is_running:
            return
        self._worker_task = asyncio.create_task(self._worker_loop())
        logger.info("✅ Order sync queue worker started")

    async def stop(self):
        if self._worker_task is None:
            return

        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None
        logger.info("🛑 Order sync queue worker stopped")

    async def join(self):
        """Espera a que se procesen todas las órdenes encoladas."""
        await self._queue.join()

    async def _worker_loop(self):
        while True:
            order_id = await self._queue.get()
            self._queued.discard(order_id)
            try:
                await self.order_sync_service.sync_order(order_id)
                self.stats["processed"] += 1
            except Exception as e:
                logger.error(f"❌ Order sync worker error for order {order_id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    def get_status(self) -> dict:
        return {"running": self.is_running, "queued": self._queue.qsize(), **self.stats}


class OrderStateTransitionConsumer:
    """
    Consumidor de eventos de transición de estado de órdenes.
    """

    def __init__(self, config_store: ISyncConfigStore, queue: OrderSyncQueue):
        self.config_store = config_store
        self.queue = queue

    async def handle(self, event: OrderStateTransitionEvent) -> bool:
        """
        Encola la orden si el estado destino dispara la sincronización.

        Returns:
            bool: True si la orden fue encolada
        """
        config = await self.config_store.load()

        if not config.enabled:
            logger.debug(f"Fulfillment sync disabled, ignoring transition of order {event.order_id}")
            return False

        if event.to_state not in config.order_sync_trigger_states:
            return False

        logger.info(f"Order {event.order_id} moved {event.from_state} -> {event.to_state}, triggering sync")
        return self.queue.enqueue(event.order_id)
