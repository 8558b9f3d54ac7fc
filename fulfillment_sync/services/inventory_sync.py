"""
Sincronización de inventario: proveedor de fulfillment -> plataforma local.

El proveedor es la fuente de verdad del stock. Cada pasada lee todo el
inventario remoto y ajusta el stock-on-hand de cada variante local para que
coincida con la cantidad disponible en el almacén.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.core.logging_config import log_sync_operation
from fulfillment_sync.db.fulfillment_client import FulfillmentAPIClient
from fulfillment_sync.domain.models import InventorySyncResult, RemoteInventoryItem
from fulfillment_sync.services.interfaces import IOrderPlatform, ISyncConfigStore
from fulfillment_sync.utils.distributed_lock import JobLock, create_job_lock
from fulfillment_sync.utils.error_handler import FulfillmentAPIException, SyncException

settings = get_settings()
logger = logging.getLogger(__name__)

INVENTORY_JOB = "inventory-sync"


def _describe(entry: Any) -> str:
    if isinstance(entry, dict) and entry.get("SKU"):
        return f"SKU {entry['SKU']}"
    return repr(entry)[:100]


class ItemOutcome:
    UPDATED = "updated"
    SKIPPED = "skipped"


class InventorySyncService:
    """
    Reconciliación de stock contra el inventario del proveedor.
    """

    def __init__(
        self,
        platform: IOrderPlatform,
        client: FulfillmentAPIClient,
        config_store: ISyncConfigStore,
        lock: JobLock | None = None,
        location_id: str | None = None,
    ):
        self.platform = platform
        self.client = client
        self.config_store = config_store
        self.lock = lock or create_job_lock(INVENTORY_JOB, settings.INVENTORY_SYNC_LOCK_TTL_SECONDS)
        self.location_id = location_id or settings.DEFAULT_STOCK_LOCATION_ID

    async def sync_inventory(self, force: bool = False) -> InventorySyncResult:
        """
        Ejecuta una pasada completa de sincronización de inventario.

        Args:
            force: Ignora el flag ``enabled`` de la configuración. No salta el
                lock: si hay otra pasada en curso igual se rechaza.

        Returns:
            InventorySyncResult: Contadores de la pasada

        Raises:
            SyncAlreadyRunningException: Si ya hay una pasada en curso
            SyncException: Si no se pudo leer el inventario remoto
        """
        result = InventorySyncResult()

        async with self.lock:
            config = await self.config_store.load()
            if not config.enabled and not force:
                logger.info("Inventory sync disabled, skipping")
                return result

            if not await self.client.ensure_authenticated():
                logger.warning("⚠️ Fulfillment API authentication failed, inventory sync skipped this cycle")
                return result

            logger.info("🔄 Starting inventory sync from fulfillment provider")

            try:
                inventory = await self.client.get_inventory()
            except FulfillmentAPIException as e:
                raise SyncException(
                    message=f"Failed to fetch remote inventory: {e.message}",
                    service="inventory",
                    operation="get_inventory",
                ) from e

            if not inventory:
                logger.warning("⚠️ Remote inventory is empty, nothing to sync")
                return result

            for entry in inventory:
                result.total_processed += 1
                try:
                    item = RemoteInventoryItem.from_api(entry)
                    outcome = await self._apply_item(item)
                except Exception as e:
                    result.errors += 1
                    logger.error(f"❌ Error syncing stock for inventory item {_describe(entry)}: {e}")
                    continue

                if outcome == ItemOutcome.UPDATED:
                    result.updated += 1
                else:
                    result.skipped += 1

            await self.config_store.update(last_inventory_sync_at=datetime.now(UTC))

        logger.info(
            f"✅ Inventory sync completed - processed: {result.total_processed}, updated: {result.updated}, "
            f"skipped: {result.skipped}, errors: {result.errors}"
        )
        log_sync_operation("sync_inventory", "inventory", **result.to_dict())
        return result

    async def _apply_item(self, item: RemoteInventoryItem) -> str:
        """
        Ajusta el stock de la variante correspondiente a un item remoto.

        Returns:
            str: ``updated`` o ``skipped``
        """
        variants = await self.platform.find_variants_by_sku(item.sku)
        if not variants:
            logger.debug(f"No local variant for SKU {item.sku}, skipping")
            return ItemOutcome.SKIPPED

        if len(variants) > 1:
            logger.warning(f"⚠️ {len(variants)} variants share SKU {item.sku}, using the first one")

        variant = variants[0]
        new_stock = max(0, int(item.available_quantity or 0))
        current_stock = int(await self.platform.get_stock_on_hand(variant.id) or 0)

        if new_stock == current_stock:
            return ItemOutcome.SKIPPED

        delta = new_stock - current_stock
        await self.platform.adjust_stock_on_hand(variant.id, self.location_id, delta)
        logger.debug(f"Stock for SKU {item.sku}: {current_stock} -> {new_stock} ({delta:+d})")
        return ItemOutcome.UPDATED

    async def sync_single_sku(self, sku: str) -> bool:
        """
        Sincroniza el stock de un único SKU.

        Returns:
            bool: True si se actualizó el stock
        """
        try:
            entries = await self.client.get_inventory(sku)
            if not entries:
                logger.warning(f"⚠️ SKU {sku} not found in remote inventory")
                return False
            item = RemoteInventoryItem.from_api(entries[0])
            return await self._apply_item(item) == ItemOutcome.UPDATED
        except Exception as e:
            logger.error(f"❌ Error syncing single SKU {sku}: {e}")
            return False

    async def force_sync(self) -> InventorySyncResult:
        """Sincronización manual, ignorando el flag ``enabled``."""
        return await self.sync_inventory(force=True)

    async def scheduled_sync(self) -> InventorySyncResult | None:
        """
        Disparo desde el scheduler: no hace nada si está deshabilitado o ya
        hay una pasada en curso.
        """
        config = await self.config_store.load()
        if not config.enabled:
            return None
        if await self.lock.is_locked():
            logger.info("Inventory sync already running, scheduled run skipped")
            return None
        return await self.sync_inventory()

    async def get_status(self) -> dict[str, Any]:
        config = await self.config_store.load()
        return {
            "last_sync_time": config.last_inventory_sync_at.isoformat() if config.last_inventory_sync_at else None,
            "is_running": await self.lock.is_locked(),
        }
