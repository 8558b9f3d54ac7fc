"""
Contenedor de servicios y dependencias de FastAPI.

La aplicación anfitriona provee la implementación de ``IOrderPlatform``
(pasándola a ``create_application`` o mediante ORDER_PLATFORM_FACTORY); el
resto de los servicios se construyen aquí una sola vez por proceso.
"""

import importlib
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment_sync.core.config import Settings
from fulfillment_sync.db.config_store import SyncConfigStore
from fulfillment_sync.db.fulfillment_client import FulfillmentAPIClient
from fulfillment_sync.db.sync_record_store import SyncRecordStore
from fulfillment_sync.db.token_manager import TokenManager
from fulfillment_sync.services.interfaces import IOrderPlatform
from fulfillment_sync.services.inventory_sync import InventorySyncService
from fulfillment_sync.services.order_sync import OrderSyncService
from fulfillment_sync.services.order_sync_queue import OrderStateTransitionConsumer, OrderSyncQueue
from fulfillment_sync.services.tracking_sync import TrackingSyncService
from fulfillment_sync.utils.error_handler import ConfigurationException

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    platform: IOrderPlatform
    config_store: SyncConfigStore
    record_store: SyncRecordStore
    token_manager: TokenManager
    client: FulfillmentAPIClient
    order_sync: OrderSyncService
    inventory_sync: InventorySyncService
    tracking_sync: TrackingSyncService
    order_queue: OrderSyncQueue
    event_consumer: OrderStateTransitionConsumer


_container: Optional[ServiceContainer] = None


def load_platform(settings: Settings) -> IOrderPlatform:
    """
    Construye la plataforma local desde ORDER_PLATFORM_FACTORY
    (formato ``paquete.modulo:funcion``).

    Raises:
        ConfigurationException: Si no hay factory configurada o es inválida
    """
    factory_path = settings.ORDER_PLATFORM_FACTORY
    if not factory_path:
        raise ConfigurationException(
            "No order platform configured: pass one to create_application() or set ORDER_PLATFORM_FACTORY"
        )

    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise ConfigurationException(f"Invalid ORDER_PLATFORM_FACTORY '{factory_path}', expected 'module:callable'")

    factory = getattr(importlib.import_module(module_name), attr)
    logger.info(f"Order platform loaded from {factory_path}")
    return factory()


def build_container(platform: IOrderPlatform, session_factory: async_sessionmaker[AsyncSession]) -> ServiceContainer:
    """
    Construye todos los servicios sobre una plataforma y una session factory.
    """
    config_store = SyncConfigStore(session_factory)
    record_store = SyncRecordStore(session_factory)
    token_manager = TokenManager(config_store)
    client = FulfillmentAPIClient(config_store, token_manager)

    order_sync = OrderSyncService(platform, client, record_store, config_store)
    order_queue = OrderSyncQueue(order_sync)

    return ServiceContainer(
        platform=platform,
        config_store=config_store,
        record_store=record_store,
        token_manager=token_manager,
        client=client,
        order_sync=order_sync,
        inventory_sync=InventorySyncService(platform, client, config_store),
        tracking_sync=TrackingSyncService(platform, client, record_store, config_store),
        order_queue=order_queue,
        event_consumer=OrderStateTransitionConsumer(config_store, order_queue),
    )


def set_container(container: Optional[ServiceContainer]) -> None:
    global _container
    _container = container


def get_container() -> ServiceContainer:
    """
    Returns:
        ServiceContainer: Contenedor inicializado en el arranque

    Raises:
        RuntimeError: Si la aplicación no fue inicializada
    """
    if _container is None:
        raise RuntimeError("Service container not initialized")
    return _container


# === DEPENDENCIAS DE FASTAPI ===


def get_order_sync_service() -> OrderSyncService:
    return get_container().order_sync


def get_inventory_sync_service() -> InventorySyncService:
    return get_container().inventory_sync


def get_tracking_sync_service() -> TrackingSyncService:
    return get_container().tracking_sync


def get_config_store() -> SyncConfigStore:
    return get_container().config_store


def get_event_consumer() -> OrderStateTransitionConsumer:
    return get_container().event_consumer


def get_order_queue() -> OrderSyncQueue:
    return get_container().order_queue
