"""
Sincronización de tracking: proveedor de fulfillment -> plataforma local.

Para cada orden ya enviada al proveedor que todavía no tiene número de
tracking, consulta el estado remoto y, si ya hay tracking, lo registra en la
orden local y la marca como enviada.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.core.logging_config import log_sync_operation
from fulfillment_sync.db.fulfillment_client import FulfillmentAPIClient
from fulfillment_sync.domain.models import LocalOrder, SyncRecord, SyncStatus, TrackingSyncResult
from fulfillment_sync.services.interfaces import IOrderPlatform, ISyncConfigStore, ISyncRecordStore
from fulfillment_sync.utils.distributed_lock import JobLock, create_job_lock
from fulfillment_sync.utils.error_handler import OrderNotFoundException

settings = get_settings()
logger = logging.getLogger(__name__)

TRACKING_JOB = "tracking-sync"
SHIPPED_STATE = "Shipped"
REMOTE_SHIPPED_STATUS = "Shipped"
# Estados locales en los que una orden puede recibir tracking
TRACKABLE_STATES = ["PaymentSettled", "PartiallyFulfilled", "Fulfilled", "Shipped"]


class TrackingSyncService:
    """
    Actualiza tracking y estado de envío de órdenes locales.
    """

    def __init__(
        self,
        platform: IOrderPlatform,
        client: FulfillmentAPIClient,
        record_store: ISyncRecordStore,
        config_store: ISyncConfigStore,
        lock: JobLock | None = None,
    ):
        self.platform = platform
        self.client = client
        self.record_store = record_store
        self.config_store = config_store
        self.lock = lock or create_job_lock(TRACKING_JOB, settings.TRACKING_SYNC_LOCK_TTL_SECONDS)

    async def sync_tracking(self) -> TrackingSyncResult:
        """
        Ejecuta una pasada de sincronización de tracking.

        Returns:
            TrackingSyncResult: Órdenes revisadas, actualizadas y con error

        Raises:
            SyncAlreadyRunningException: Si ya hay una pasada en curso
        """
        result = TrackingSyncResult()

        async with self.lock:
            if not await self.client.ensure_authenticated():
                logger.warning("⚠️ Fulfillment API authentication failed, tracking sync skipped this cycle")
                return result

            candidates = await self._find_candidates()
            logger.info(f"🔄 Starting tracking sync for {len(candidates)} orders")

            for record, order in candidates:
                result.orders_checked += 1
                try:
                    if await self._update_order_tracking(record, order):
                        result.tracking_updated += 1
                except Exception as e:
                    result.errors += 1
                    result.details.append({"order_id": order.id, "error": str(e)})
                    logger.error(f"❌ Error updating tracking for order {order.code}: {e}")

            await self.config_store.update(last_tracking_sync_at=datetime.now(UTC))

        logger.info(
            f"✅ Tracking sync completed - checked: {result.orders_checked}, "
            f"updated: {result.tracking_updated}, errors: {result.errors}"
        )
        log_sync_operation(
            "sync_tracking",
            "tracking",
            orders_checked=result.orders_checked,
            tracking_updated=result.tracking_updated,
            errors=result.errors,
        )
        return result

    async def _find_candidates(self) -> list[tuple[SyncRecord, LocalOrder]]:
        """
        Órdenes sincronizadas con éxito, con id remoto, sin tracking y en un
        estado que admite tracking.
        """
        records = await self.record_store.list_synced_with_remote_id()
        if not records:
            return []

        by_order_id = {record.local_order_id: record for record in records}
        orders = await self.platform.list_orders(list(by_order_id), states=TRACKABLE_STATES)

        return [
            (by_order_id[order.id], order)
            for order in orders
            if order.id in by_order_id and not order.tracking_code and order.state in TRACKABLE_STATES
        ]

    async def _update_order_tracking(self, record: SyncRecord, order: LocalOrder) -> bool:
        """
        Consulta el estado remoto de una orden y registra su tracking.

        Returns:
            bool: True si se actualizó el tracking de la orden
        """
        status = await self.client.get_order_status(order.code)

        if not status.tracking_number:
            logger.debug(f"Order {order.code} has no tracking number yet")
            return False

        if order.tracking_code == status.tracking_number:
            return False

        await self.platform.update_order_custom_fields(
            order.id,
            {
                "trackingCode": status.tracking_number,
                "carrier": status.carrier,
                "shipDate": status.ship_date,
            },
        )

        await self.record_store.merge_metadata(
            record.local_order_id,
            "tracking_info",
            {
                "tracking_number": status.tracking_number,
                "carrier": status.carrier,
                "ship_date": status.ship_date,
                "remote_status": status.status,
            },
        )

        if status.status == REMOTE_SHIPPED_STATUS and order.state != SHIPPED_STATE:
            try:
                await self.platform.transition_order_state(order.id, SHIPPED_STATE)
                logger.info(f"📦 Order {order.code} transitioned to {SHIPPED_STATE}")
            except Exception as e:
                logger.warning(f"⚠️ Could not transition order {order.code} to {SHIPPED_STATE}: {e}")

        logger.info(f"✅ Tracking {status.tracking_number} ({status.carrier}) recorded for order {order.code}")
        return True

    async def sync_tracking_for_order(self, order_id: str) -> bool:
        """
        Sincroniza el tracking de una sola orden.

        Returns:
            bool: True si se actualizó el tracking

        Raises:
            OrderNotFoundException: Si la orden no existe o no fue sincronizada con éxito
        """
        record = await self.record_store.get(order_id)
        if record is None or record.status != SyncStatus.SUCCESS or not record.remote_order_id:
            raise OrderNotFoundException(order_id, details={"reason": "order has not been synced successfully"})

        order = await self.platform.get_order(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)

        return await self._update_order_tracking(record, order)

    async def force_tracking_sync(self) -> TrackingSyncResult:
        """Sincronización manual fuera de la ventana del scheduler."""
        return await self.sync_tracking()

    async def scheduled_sync(self) -> TrackingSyncResult | None:
        config = await self.config_store.load()
        if not config.enabled:
            return None
        if await self.lock.is_locked():
            logger.info("Tracking sync already running, scheduled run skipped")
            return None
        return await self.sync_tracking()

    async def get_tracking_stats(self) -> dict[str, Any]:
        config = await self.config_store.load()
        return {
            "last_sync_time": config.last_tracking_sync_at.isoformat() if config.last_tracking_sync_at else None,
            "is_running": await self.lock.is_locked(),
            "total_orders_tracked": await self.record_store.count_with_tracking(),
        }
