"""
Servicio de sincronización de órdenes locales hacia el proveedor de fulfillment.

Máquina de estados por orden:
    pending -> success | error
    error -> retrying -> success | error
``success`` es terminal: una orden ya sincronizada no se vuelve a enviar.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fulfillment_sync.core.logging_config import log_sync_operation
from fulfillment_sync.db.fulfillment_client import FulfillmentAPIClient
from fulfillment_sync.domain.models import FulfillmentOrderPayload, SyncRecord, SyncStatus
from fulfillment_sync.services.interfaces import IOrderPlatform, ISyncConfigStore, ISyncRecordStore

logger = logging.getLogger(__name__)

RECENT_ERRORS_LIMIT = 10


def utc_now() -> datetime:
    return datetime.now(UTC)


class OrderSyncService:
    """
    Envía órdenes locales al proveedor y registra el resultado.
    """

    def __init__(
        self,
        platform: IOrderPlatform,
        client: FulfillmentAPIClient,
        record_store: ISyncRecordStore,
        config_store: ISyncConfigStore,
    ):
        self.platform = platform
        self.client = client
        self.record_store = record_store
        self.config_store = config_store

    async def sync_order(self, order_id: str) -> None:
        """
        Sincroniza una orden con el proveedor.

        Nunca propaga excepciones: cualquier falla queda registrada en el
        SyncRecord de la orden (si ya existe).

        Args:
            order_id: Id de la orden local
        """
        record_exists = False
        try:
            order = await self.platform.get_order(order_id)
            if order is None:
                logger.warning(f"⚠️ Order {order_id} not found on local platform, skipping sync")
                return

            existing = await self.record_store.get(order_id)
            if existing and existing.status == SyncStatus.SUCCESS:
                logger.info(f"Order {order.code} already synced (remote id {existing.remote_order_id})")
                return

            if not await self.client.ensure_authenticated():
                logger.warning(f"⚠️ Fulfillment API authentication failed, order {order.code} will sync later")
                return

            status = SyncStatus.PENDING
            if existing and existing.status in (SyncStatus.ERROR, SyncStatus.RETRYING):
                status = SyncStatus.RETRYING

            await self.record_store.begin_attempt(order_id, order.code, status, utc_now())
            record_exists = True

            config = await self.config_store.load()
            payload = FulfillmentOrderPayload.from_order(order, config.company_id)

            logger.info(f"🔄 Sending order {order.code} to fulfillment provider ({len(payload.items)} items)")
            result = await self.client.create_order(payload)

            if result.success:
                await self.record_store.mark_success(
                    order_id,
                    result.remote_order_id,
                    {"remote_response": result.response, "request_payload": payload.to_api()},
                    utc_now(),
                )
                logger.info(
                    f"✅ Order {order.code} synced - remote id {result.remote_order_id} "
                    f"after {result.attempts} attempt(s)"
                )
                log_sync_operation(
                    "sync_order",
                    "orders",
                    order_id=order_id,
                    remote_order_id=result.remote_order_id,
                    attempts=result.attempts,
                )
            else:
                await self.record_store.mark_error(order_id, result.error or "Unknown error occurred", utc_now())
                logger.error(f"❌ Order {order.code} sync failed after {result.attempts} attempt(s): {result.error}")

        except Exception as e:
            logger.error(f"❌ Unexpected error syncing order {order_id}: {e}", exc_info=True)
            await self._record_unexpected_failure(order_id, str(e), record_exists)

    async def _record_unexpected_failure(self, order_id: str, message: str, record_exists: bool) -> None:
        try:
            if not record_exists and await self.record_store.get(order_id) is None:
                return
            await self.record_store.mark_error(order_id, message, utc_now())
        except Exception as update_error:
            logger.error(f"❌ Could not record sync failure for order {order_id}: {update_error}")

    async def retry_sync_order(self, order_id: str) -> bool:
        """
        Reintenta la sincronización de una orden.

        Returns:
            bool: True si la orden quedó en estado ``success``
        """
        logger.info(f"🔄 Manual retry of order {order_id}")
        await self.sync_order(order_id)
        record = await self.record_store.get(order_id)
        return record is not None and record.status == SyncStatus.SUCCESS

    async def get_sync_status(self, order_id: str) -> SyncRecord | None:
        return await self.record_store.get(order_id)

    async def get_failed_syncs(self) -> list[SyncRecord]:
        """Órdenes en estado ``error``, intento más reciente primero."""
        return await self.record_store.list_by_status(SyncStatus.ERROR)

    async def get_sync_stats(self) -> dict[str, Any]:
        """
        Estadísticas de sincronización de órdenes.

        Returns:
            Dict: Conteos por estado y los errores más recientes
        """
        counts = await self.record_store.count_by_status()
        recent_errors = await self.record_store.list_by_status(SyncStatus.ERROR, limit=RECENT_ERRORS_LIMIT)

        return {
            "total_synced": counts.get(SyncStatus.SUCCESS.value, 0),
            "total_failed": counts.get(SyncStatus.ERROR.value, 0),
            "total_pending": counts.get(SyncStatus.PENDING.value, 0),
            "total_retrying": counts.get(SyncStatus.RETRYING.value, 0),
            "recent_errors": [
                {
                    "local_order_id": record.local_order_id,
                    "local_order_code": record.local_order_code,
                    "error_message": record.error_message,
                    "retry_count": record.retry_count,
                    "last_attempt_at": record.last_attempt_at.isoformat() if record.last_attempt_at else None,
                }
                for record in recent_errors
            ],
        }
