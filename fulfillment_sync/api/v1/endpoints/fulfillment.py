"""
Endpoints de administración de la sincronización con el proveedor de fulfillment.

Permiten consultar y reintentar sincronizaciones de órdenes, forzar pasadas
de inventario y tracking, ver y modificar la configuración, y recibir los
eventos de transición de estado de la plataforma local.
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from fulfillment_sync.core.dependencies import (
    get_config_store,
    get_event_consumer,
    get_inventory_sync_service,
    get_order_queue,
    get_order_sync_service,
    get_tracking_sync_service,
)
from fulfillment_sync.core.scheduler import get_scheduler_status
from fulfillment_sync.db.config_store import SyncConfigStore
from fulfillment_sync.domain.models import OrderStateTransitionEvent
from fulfillment_sync.services.inventory_sync import InventorySyncService
from fulfillment_sync.services.order_sync import OrderSyncService
from fulfillment_sync.services.order_sync_queue import OrderStateTransitionConsumer, OrderSyncQueue
from fulfillment_sync.services.tracking_sync import TrackingSyncService
from fulfillment_sync.utils.error_handler import OrderNotFoundException, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


class OrderStateTransitionRequest(BaseModel):
    """Evento de transición de estado publicado por la plataforma local."""

    order_id: str = Field(..., min_length=1, description="Id de la orden local")
    from_state: str | None = Field(None, description="Estado anterior")
    to_state: str = Field(..., min_length=1, description="Estado nuevo")
    occurred_at: datetime | None = Field(None, description="Momento de la transición")


class SyncConfigUpdate(BaseModel):
    """Campos modificables de la configuración de sincronización."""

    enabled: bool | None = Field(None, description="Habilita o deshabilita la sincronización")
    inventory_interval_minutes: int | None = Field(None, ge=1, le=10080, description="Intervalo de inventario")
    tracking_interval_minutes: int | None = Field(None, ge=1, le=1440, description="Intervalo de tracking")
    order_sync_trigger_states: list[str] | None = Field(
        None, description="Estados de orden que disparan la sincronización"
    )


def _success(data: Any, message: str) -> dict[str, Any]:
    return {"status": "success", "data": data, "message": message}


# === ÓRDENES ===


@router.get("/orders/stats", status_code=status.HTTP_200_OK)
async def get_order_sync_stats(service: OrderSyncService = Depends(get_order_sync_service)) -> dict[str, Any]:
    """
    Estadísticas de sincronización de órdenes.

    Example:
        ```json
        {
            "status": "success",
            "data": {
                "total_synced": 120,
                "total_failed": 2,
                "total_pending": 1,
                "total_retrying": 0,
                "recent_errors": []
            }
        }
        ```
    """
    return _success(await service.get_sync_stats(), "Order sync stats retrieved successfully")


@router.get("/orders/failed", status_code=status.HTTP_200_OK)
async def get_failed_order_syncs(service: OrderSyncService = Depends(get_order_sync_service)) -> dict[str, Any]:
    """Órdenes cuya sincronización terminó en error, más recientes primero."""
    records = await service.get_failed_syncs()
    return _success([record.to_dict() for record in records], f"{len(records)} failed order syncs")


@router.get("/orders/{order_id}/sync-status", status_code=status.HTTP_200_OK)
async def get_order_sync_status(
    order_id: str, service: OrderSyncService = Depends(get_order_sync_service)
) -> dict[str, Any]:
    record = await service.get_sync_status(order_id)
    if record is None:
        raise OrderNotFoundException(order_id)
    return _success(record.to_dict(), "Order sync status retrieved successfully")


@router.post("/orders/{order_id}/retry", status_code=status.HTTP_200_OK)
async def retry_order_sync(order_id: str, service: OrderSyncService = Depends(get_order_sync_service)) -> dict[str, Any]:
    """
    Reintenta la sincronización de una orden de forma inmediata.

    Returns:
        Dict con ``synced`` indicando si la orden quedó sincronizada
    """
    synced = await service.retry_sync_order(order_id)
    record = await service.get_sync_status(order_id)
    return _success(
        {"synced": synced, "record": record.to_dict() if record else None},
        "Order synced successfully" if synced else "Order sync did not succeed",
    )


# === INVENTARIO ===


@router.post("/inventory/sync", status_code=status.HTTP_200_OK)
async def force_inventory_sync(
    service: InventorySyncService = Depends(get_inventory_sync_service),
) -> dict[str, Any]:
    """
    Fuerza una pasada de inventario.

    Responde 409 si ya hay una pasada en curso.
    """
    result = await service.force_sync()
    return _success(result.to_dict(), "Inventory sync completed")


@router.post("/inventory/sku/{sku}", status_code=status.HTTP_200_OK)
async def sync_inventory_sku(
    sku: str, service: InventorySyncService = Depends(get_inventory_sync_service)
) -> dict[str, Any]:
    updated = await service.sync_single_sku(sku)
    return _success({"sku": sku, "updated": updated}, "Stock updated" if updated else "Stock not updated")


@router.get("/inventory/status", status_code=status.HTTP_200_OK)
async def get_inventory_sync_status(
    service: InventorySyncService = Depends(get_inventory_sync_service),
) -> dict[str, Any]:
    return _success(await service.get_status(), "Inventory sync status retrieved successfully")


# === TRACKING ===


@router.post("/tracking/sync", status_code=status.HTTP_200_OK)
async def force_tracking_sync(service: TrackingSyncService = Depends(get_tracking_sync_service)) -> dict[str, Any]:
    """Fuerza una pasada de tracking fuera de la ventana programada."""
    result = await service.force_tracking_sync()
    return _success(result.to_dict(), "Tracking sync completed")


@router.post("/tracking/orders/{order_id}", status_code=status.HTTP_200_OK)
async def sync_order_tracking(
    order_id: str, service: TrackingSyncService = Depends(get_tracking_sync_service)
) -> dict[str, Any]:
    updated = await service.sync_tracking_for_order(order_id)
    return _success(
        {"order_id": order_id, "tracking_updated": updated},
        "Tracking updated" if updated else "No new tracking information",
    )


@router.get("/tracking/stats", status_code=status.HTTP_200_OK)
async def get_tracking_stats(service: TrackingSyncService = Depends(get_tracking_sync_service)) -> dict[str, Any]:
    return _success(await service.get_tracking_stats(), "Tracking stats retrieved successfully")


# === CONFIGURACIÓN ===


@router.get("/config", status_code=status.HTTP_200_OK)
async def get_sync_config(store: SyncConfigStore = Depends(get_config_store)) -> dict[str, Any]:
    """Configuración actual (sin secretos)."""
    config = await store.load()
    return _success(config.public_view(), "Sync configuration retrieved successfully")


@router.patch("/config", status_code=status.HTTP_200_OK)
async def update_sync_config(
    update: SyncConfigUpdate, store: SyncConfigStore = Depends(get_config_store)
) -> dict[str, Any]:
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise ValidationException("No configuration changes provided", field="body")

    if "order_sync_trigger_states" in changes:
        states = [state.strip() for state in changes["order_sync_trigger_states"] if state.strip()]
        if not states:
            raise ValidationException(
                "At least one trigger state is required", field="order_sync_trigger_states", invalid_value=states
            )
        changes["order_sync_trigger_states"] = states

    config = await store.update(**changes)
    logger.info(f"🔧 Sync configuration updated: {sorted(changes)}")
    return _success(config.public_view(), "Sync configuration updated successfully")


# === EVENTOS Y ESTADO ===


@router.post("/events/order-state-transition", status_code=status.HTTP_202_ACCEPTED)
async def receive_order_state_transition(
    event: OrderStateTransitionRequest,
    consumer: OrderStateTransitionConsumer = Depends(get_event_consumer),
) -> dict[str, Any]:
    """
    Recibe una transición de estado de orden y encola la sincronización si
    el estado destino es disparador.
    """
    queued = await consumer.handle(
        OrderStateTransitionEvent(
            order_id=event.order_id,
            from_state=event.from_state,
            to_state=event.to_state,
            occurred_at=event.occurred_at,
        )
    )
    return _success({"order_id": event.order_id, "queued": queued}, "Event processed")


@router.get("/status", status_code=status.HTTP_200_OK)
async def get_engine_status(queue: OrderSyncQueue = Depends(get_order_queue)) -> dict[str, Any]:
    """Estado del scheduler y de la cola de órdenes."""
    return _success(
        {"scheduler": get_scheduler_status(), "order_queue": queue.get_status()},
        "Engine status retrieved successfully",
    )
