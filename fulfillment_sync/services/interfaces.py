"""
Interfaces (Protocols) de los colaboradores de los servicios de sincronización.

Los servicios dependen de estas abstracciones y no de las implementaciones
concretas, lo que permite inyectar dobles en tests y cambiar la plataforma
local sin tocar la lógica de sincronización.
"""

from datetime import datetime
from typing import Any, Protocol

from fulfillment_sync.domain.models import (
    LocalOrder,
    ProductVariant,
    SyncConfig,
    SyncRecord,
    SyncStatus,
)


class IOrderPlatform(Protocol):
    """
    Plataforma local de gestión de órdenes.

    La implementación concreta la provee la aplicación anfitriona.
    """

    async def get_order(self, order_id: str) -> LocalOrder | None:
        """Obtiene una orden con líneas, cliente y dirección de envío."""
        ...

    async def list_orders(self, order_ids: list[str], states: list[str] | None = None) -> list[LocalOrder]:
        """Lista órdenes por id, opcionalmente filtrando por estado."""
        ...

    async def update_order_custom_fields(self, order_id: str, fields: dict[str, Any]) -> None:
        """Actualiza campos personalizados (trackingCode, carrier, shipDate)."""
        ...

    async def transition_order_state(self, order_id: str, state: str) -> None:
        """Transiciona la orden a otro estado; lanza excepción si no es válido."""
        ...

    async def find_variants_by_sku(self, sku: str) -> list[ProductVariant]:
        """Variantes de producto con el SKU dado."""
        ...

    async def get_stock_on_hand(self, variant_id: str) -> int:
        """Stock disponible actual de la variante."""
        ...

    async def adjust_stock_on_hand(self, variant_id: str, location_id: str, delta: int) -> None:
        """Ajusta el stock de la variante en la ubicación por ``delta`` unidades."""
        ...


class ISyncConfigStore(Protocol):
    """Almacén de la configuración (fila única)."""

    async def load(self) -> SyncConfig:
        ...

    async def update(self, **changes: Any) -> SyncConfig:
        ...


class ISyncRecordStore(Protocol):
    """Almacén de registros de sincronización por orden."""

    async def get(self, local_order_id: str) -> SyncRecord | None:
        ...

    async def begin_attempt(
        self, local_order_id: str, local_order_code: str, status: SyncStatus, attempted_at: datetime
    ) -> SyncRecord:
        ...

    async def mark_success(
        self, local_order_id: str, remote_order_id: str | None, metadata: dict[str, Any], succeeded_at: datetime
    ) -> None:
        ...

    async def mark_error(self, local_order_id: str, error_message: str, attempted_at: datetime) -> None:
        ...

    async def merge_metadata(self, local_order_id: str, key: str, value: dict[str, Any]) -> None:
        ...

    async def list_by_status(self, status: SyncStatus, limit: int | None = None) -> list[SyncRecord]:
        ...

    async def list_synced_with_remote_id(self) -> list[SyncRecord]:
        ...

    async def count_by_status(self) -> dict[str, int]:
        ...

    async def count_with_tracking(self) -> int:
        ...
