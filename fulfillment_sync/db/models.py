"""
Modelos ORM (SQLAlchemy) de las tablas del motor de sincronización.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base declarativa de SQLAlchemy."""


class SyncConfigRecord(Base):
    """Fila única con credenciales, token y estado de los jobs."""

    __tablename__ = "fulfillment_sync_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_url: Mapped[str] = mapped_column(String(512))
    client_id: Mapped[str] = mapped_column(String(255))
    client_secret: Mapped[str] = mapped_column(String(255))
    company_id: Mapped[str] = mapped_column(String(255))
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    inventory_interval_minutes: Mapped[int] = mapped_column(Integer, default=1440)
    tracking_interval_minutes: Mapped[int] = mapped_column(Integer, default=30)
    order_sync_trigger_states: Mapped[list[str]] = mapped_column(JSON, default=lambda: ["PaymentSettled"])
    last_inventory_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_tracking_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class OrderSyncRecord(Base):
    """Estado de sincronización de una orden local con el proveedor."""

    __tablename__ = "fulfillment_order_sync"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_order_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    local_order_code: Mapped[str] = mapped_column(String(128), index=True)
    remote_order_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_success_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # "metadata" está reservado por DeclarativeBase
    sync_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<OrderSyncRecord(order={self.local_order_id}, status='{self.status}', retries={self.retry_count})>"
