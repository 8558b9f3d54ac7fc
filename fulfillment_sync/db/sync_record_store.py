"""
Almacén de registros de sincronización de órdenes.

Todas las actualizaciones son a nivel de campo (``UPDATE ... SET col = ...``)
y el contador de reintentos se incrementa en SQL, así dos escritores
concurrentes no pierden incrementos.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment_sync.db.models import OrderSyncRecord
from fulfillment_sync.domain.models import SyncRecord, SyncStatus

logger = logging.getLogger(__name__)


def _to_domain(row: OrderSyncRecord) -> SyncRecord:
    return SyncRecord(
        id=row.id,
        local_order_id=row.local_order_id,
        local_order_code=row.local_order_code,
        status=SyncStatus(row.status),
        remote_order_id=row.remote_order_id,
        error_message=row.error_message,
        retry_count=row.retry_count or 0,
        last_attempt_at=row.last_attempt_at,
        last_success_at=row.last_success_at,
        metadata=dict(row.sync_metadata or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SyncRecordStore:
    """Persistencia de ``SyncRecord`` sobre SQLAlchemy async."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, local_order_id: str) -> SyncRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderSyncRecord).where(OrderSyncRecord.local_order_id == local_order_id)
            )
            row = result.scalar_one_or_none()
        return _to_domain(row) if row else None

    async def begin_attempt(
        self, local_order_id: str, local_order_code: str, status: SyncStatus, attempted_at: datetime
    ) -> SyncRecord:
        """
        Crea el registro o marca el inicio de un nuevo intento.

        Usa INSERT ... ON CONFLICT para respetar la unicidad por orden aunque
        dos disparos lleguen a la vez.

        Args:
            local_order_id: Id de la orden local
            local_order_code: Código de la orden local
            status: PENDING para registros nuevos, RETRYING para reintentos
            attempted_at: Momento del intento

        Returns:
            SyncRecord: Registro resultante
        """
        now = datetime.now(UTC)
        stmt = pg_insert(OrderSyncRecord).values(
            local_order_id=local_order_id,
            local_order_code=local_order_code,
            status=status.value,
            retry_count=0,
            last_attempt_at=attempted_at,
            sync_metadata={},
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[OrderSyncRecord.local_order_id],
            set_={"status": status.value, "last_attempt_at": attempted_at, "updated_at": now},
        ).returning(OrderSyncRecord)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalar_one()
            record = _to_domain(row)
            await session.commit()

        return record

    async def _update_fields(self, local_order_id: str, **values: Any) -> None:
        values.setdefault("updated_at", datetime.now(UTC))
        async with self._session_factory() as session:
            await session.execute(
                update(OrderSyncRecord).where(OrderSyncRecord.local_order_id == local_order_id).values(**values)
            )
            await session.commit()

    async def mark_success(
        self, local_order_id: str, remote_order_id: str | None, metadata: dict[str, Any], succeeded_at: datetime
    ) -> None:
        await self._update_fields(
            local_order_id,
            status=SyncStatus.SUCCESS.value,
            remote_order_id=remote_order_id,
            error_message=None,
            last_success_at=succeeded_at,
            sync_metadata=metadata,
        )

    async def mark_error(self, local_order_id: str, error_message: str, attempted_at: datetime) -> None:
        await self._update_fields(
            local_order_id,
            status=SyncStatus.ERROR.value,
            error_message=error_message,
            last_attempt_at=attempted_at,
            retry_count=OrderSyncRecord.retry_count + 1,
        )

    async def merge_metadata(self, local_order_id: str, key: str, value: dict[str, Any]) -> None:
        """
        Mezcla ``value`` dentro de ``metadata[key]`` sin tocar otras llaves.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderSyncRecord)
                .where(OrderSyncRecord.local_order_id == local_order_id)
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                logger.warning(f"⚠️ Sync record not found for order {local_order_id}, metadata not merged")
                return

            metadata = dict(row.sync_metadata or {})
            metadata[key] = {**metadata.get(key, {}), **value}
            await session.execute(
                update(OrderSyncRecord)
                .where(OrderSyncRecord.id == row.id)
                .values(sync_metadata=metadata, updated_at=datetime.now(UTC))
            )
            await session.commit()

    async def list_by_status(self, status: SyncStatus, limit: int | None = None) -> list[SyncRecord]:
        """Registros con el estado dado, intento más reciente primero."""
        stmt = (
            select(OrderSyncRecord)
            .where(OrderSyncRecord.status == status.value)
            .order_by(OrderSyncRecord.last_attempt_at.desc().nulls_last())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def list_synced_with_remote_id(self) -> list[SyncRecord]:
        """Registros exitosos que ya tienen id remoto (candidatos a tracking)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderSyncRecord).where(
                    OrderSyncRecord.status == SyncStatus.SUCCESS.value,
                    OrderSyncRecord.remote_order_id.isnot(None),
                )
            )
            return [_to_domain(row) for row in result.scalars().all()]

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderSyncRecord.status, func.count(OrderSyncRecord.id)).group_by(OrderSyncRecord.status)
            )
            counts = {status.value: 0 for status in SyncStatus}
            counts.update({status: count for status, count in result.all()})
        return counts

    async def count_with_tracking(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(OrderSyncRecord.id)).where(
                    OrderSyncRecord.status == SyncStatus.SUCCESS.value,
                    OrderSyncRecord.sync_metadata["tracking_info"].as_string().isnot(None),
                )
            )
            return result.scalar_one()
