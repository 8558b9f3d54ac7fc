"""
Sync state domain models.

SyncRecord tracks one local order's sync with the provider; SyncConfig is an
immutable snapshot of the singleton configuration row.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class SyncStatus(str, Enum):
    """Estado de sincronización de una orden."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    RETRYING = "retrying"


class SyncConfig(BaseModel):
    """
    Snapshot inmutable de la configuración de sincronización.

    Para cambiarla se usa ``SyncConfigStore.update`` que devuelve un snapshot
    nuevo con ``version`` incrementada.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    api_url: str
    client_id: str
    client_secret: str
    company_id: str
    access_token: str | None = None
    token_expires_at: datetime | None = None
    enabled: bool = True
    inventory_interval_minutes: int = 1440
    tracking_interval_minutes: int = 30
    order_sync_trigger_states: list[str] = ["PaymentSettled"]
    last_inventory_sync_at: datetime | None = None
    last_tracking_sync_at: datetime | None = None
    version: int = 1

    def public_view(self) -> dict[str, Any]:
        """Config sin secretos, para el API de administración."""
        data = self.model_dump(exclude={"client_secret", "access_token"})
        data["has_access_token"] = bool(self.access_token)
        return data


@dataclass
class SyncRecord:
    """
    Registro de sincronización de una orden local.

    Attributes:
        local_order_id: Id de la orden local (único)
        local_order_code: Código de la orden local
        status: Estado de sincronización
        remote_order_id: Id de la orden en el proveedor (tras el primer éxito)
        error_message: Último error, se limpia al tener éxito
        retry_count: Intentos fallidos acumulados
        last_attempt_at: Último intento
        last_success_at: Último éxito
        metadata: remote_response, request_payload, tracking_info
    """

    local_order_id: str
    local_order_code: str
    status: SyncStatus = SyncStatus.PENDING
    remote_order_id: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    last_attempt_at: datetime | None = None
    last_success_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "local_order_id": self.local_order_id,
            "local_order_code": self.local_order_code,
            "status": self.status.value,
            "remote_order_id": self.remote_order_id,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
