"""Fixtures compartidas: plataforma, stores y locks en memoria."""

import time
import uuid
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from fulfillment_sync.domain.models import (
    Customer,
    LocalOrder,
    OrderLine,
    ProductVariant,
    ShippingAddress,
    SyncConfig,
    SyncRecord,
    SyncStatus,
)
from fulfillment_sync.utils.distributed_lock import JobLock


class FakePlatform:
    """Plataforma local en memoria que registra las escrituras."""

    def __init__(self):
        self.orders: dict[str, LocalOrder] = {}
        self.variants: dict[str, list[ProductVariant]] = {}
        self.stock: dict[str, int] = {}
        self.adjustments: list[tuple[str, str, int]] = []
        self.custom_field_updates: list[tuple[str, dict[str, Any]]] = []
        self.transitions: list[tuple[str, str]] = []
        self.fail_transition = False

    def add_order(self, order: LocalOrder) -> LocalOrder:
        self.orders[order.id] = order
        return order

    def add_variant(self, variant_id: str, sku: str, stock: int) -> ProductVariant:
        variant = ProductVariant(id=variant_id, sku=sku, stock_on_hand=stock)
        self.variants.setdefault(sku, []).append(variant)
        self.stock[variant_id] = stock
        return variant

    async def get_order(self, order_id: str) -> LocalOrder | None:
        return self.orders.get(order_id)

    async def list_orders(self, order_ids: list[str], states: list[str] | None = None) -> list[LocalOrder]:
        return [
            order
            for order_id, order in self.orders.items()
            if order_id in order_ids and (states is None or order.state in states)
        ]

    async def update_order_custom_fields(self, order_id: str, fields: dict[str, Any]) -> None:
        self.custom_field_updates.append((order_id, fields))
        self.orders[order_id].custom_fields.update(fields)

    async def transition_order_state(self, order_id: str, state: str) -> None:
        if self.fail_transition:
            raise RuntimeError(f"Cannot transition order {order_id} to {state}")
        self.transitions.append((order_id, state))
        self.orders[order_id].state = state

    async def find_variants_by_sku(self, sku: str) -> list[ProductVariant]:
        return list(self.variants.get(sku, []))

    async def get_stock_on_hand(self, variant_id: str) -> int:
        return self.stock[variant_id]

    async def adjust_stock_on_hand(self, variant_id: str, location_id: str, delta: int) -> None:
        self.adjustments.append((variant_id, location_id, delta))
        self.stock[variant_id] += delta


class FakeConfigStore:
    """Store de configuración en memoria con snapshots inmutables."""

    def __init__(self, config: SyncConfig):
        self.config = config
        self.updates: list[dict[str, Any]] = []

    async def load(self) -> SyncConfig:
        return self.config

    async def update(self, **changes: Any) -> SyncConfig:
        self.updates.append(changes)
        self.config = self.config.model_copy(update={**changes, "version": self.config.version + 1})
        return self.config


class FakeRecordStore:
    """Store de SyncRecord en memoria con la misma semántica que SyncRecordStore."""

    def __init__(self):
        self.records: dict[str, SyncRecord] = {}

    async def get(self, local_order_id: str) -> SyncRecord | None:
        return self.records.get(local_order_id)

    async def begin_attempt(
        self, local_order_id: str, local_order_code: str, status: SyncStatus, attempted_at: datetime
    ) -> SyncRecord:
        record = self.records.get(local_order_id)
        if record is None:
            record = SyncRecord(local_order_id=local_order_id, local_order_code=local_order_code)
            self.records[local_order_id] = record
        record.status = status
        record.last_attempt_at = attempted_at
        return record

    async def mark_success(
        self, local_order_id: str, remote_order_id: str | None, metadata: dict[str, Any], succeeded_at: datetime
    ) -> None:
        record = self.records[local_order_id]
        record.status = SyncStatus.SUCCESS
        record.remote_order_id = remote_order_id
        record.error_message = None
        record.last_success_at = succeeded_at
        record.metadata = dict(metadata)

    async def mark_error(self, local_order_id: str, error_message: str, attempted_at: datetime) -> None:
        record = self.records[local_order_id]
        record.status = SyncStatus.ERROR
        record.error_message = error_message
        record.retry_count += 1
        record.last_attempt_at = attempted_at

    async def merge_metadata(self, local_order_id: str, key: str, value: dict[str, Any]) -> None:
        record = self.records.get(local_order_id)
        if record is None:
            return
        metadata = record.metadata
        metadata[key] = {**metadata.get(key, {}), **value}

    async def list_by_status(self, status: SyncStatus, limit: int | None = None) -> list[SyncRecord]:
        records = [record for record in self.records.values() if record.status == status]
        records.sort(key=lambda r: r.last_attempt_at.timestamp() if r.last_attempt_at else 0, reverse=True)
        return records[:limit] if limit else records

    async def list_synced_with_remote_id(self) -> list[SyncRecord]:
        return [r for r in self.records.values() if r.status == SyncStatus.SUCCESS and r.remote_order_id]

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        for record in self.records.values():
            counts[record.status.value] += 1
        return counts

    async def count_with_tracking(self) -> int:
        return sum(1 for r in self.records.values() if "tracking_info" in r.metadata)


class InMemoryJobLock(JobLock):
    """Lock con lease en memoria para tests de concurrencia."""

    def __init__(self, job_name: str = "test-job", ttl_seconds: int = 60):
        super().__init__(job_name, ttl_seconds)
        self.expires_at = 0.0
        self.owner: str | None = None

    async def _try_acquire(self) -> str | None:
        if time.time() < self.expires_at:
            return None
        self.owner = uuid.uuid4().hex
        self.expires_at = time.time() + self.ttl_seconds
        return self.owner

    async def _release_token(self, token: str, acquired_at: float) -> None:
        if token == self.owner:
            self.owner = None
            self.expires_at = 0.0

    async def is_locked(self) -> bool:
        return time.time() < self.expires_at


def make_order(
    order_id: str = "1",
    code: str = "ORD-1001",
    state: str = "PaymentSettled",
    custom_fields: dict[str, Any] | None = None,
) -> LocalOrder:
    return LocalOrder(
        id=order_id,
        code=code,
        state=state,
        lines=[
            OrderLine(sku="SKU-RED-M", quantity=2, unit_price_with_tax=1999),
            OrderLine(sku="SKU-BLUE-L", quantity=1, unit_price_with_tax=4500),
        ],
        customer=Customer(first_name="Ana", last_name="Mora", email_address="ana@example.com"),
        shipping_address=ShippingAddress(
            street_line1="100 Main St",
            street_line2="Apt 4",
            city="Portland",
            province="OR",
            postal_code="97201",
            country_code="US",
        ),
        custom_fields=custom_fields or {},
    )


def make_client() -> MagicMock:
    """Cliente de fulfillment con métodos async simulados y autenticación OK."""
    client = MagicMock()
    client.ensure_authenticated = AsyncMock(return_value=True)
    client.create_order = AsyncMock()
    client.get_order_status = AsyncMock()
    client.get_inventory = AsyncMock(return_value=[])
    return client


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        api_url="https://fulfillment.test",
        client_id="client-id",
        client_secret="client-secret",
        company_id="COMPANY-1",
        access_token="token-abc",
        order_sync_trigger_states=["PaymentSettled"],
    )


@pytest.fixture
def config_store(sync_config) -> FakeConfigStore:
    return FakeConfigStore(sync_config)


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def client() -> MagicMock:
    return make_client()


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def job_lock() -> InMemoryJobLock:
    return InMemoryJobLock()


@pytest.fixture
def tracking_lock() -> InMemoryJobLock:
    return InMemoryJobLock("tracking-sync")
