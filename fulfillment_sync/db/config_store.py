"""
Almacén de la configuración de sincronización (fila única).

La configuración se lee como snapshot inmutable (``SyncConfig``) antes de
cada operación remota. Todas las escrituras pasan por ``update()``, que
aplica un parche a nivel de campo en un solo UPDATE e incrementa ``version``.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment_sync.core.config import Settings
from fulfillment_sync.db.models import SyncConfigRecord
from fulfillment_sync.domain.models import SyncConfig
from fulfillment_sync.utils.error_handler import ConfigurationException, ValidationException

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "api_url",
        "client_id",
        "client_secret",
        "company_id",
        "access_token",
        "token_expires_at",
        "enabled",
        "inventory_interval_minutes",
        "tracking_interval_minutes",
        "order_sync_trigger_states",
        "last_inventory_sync_at",
        "last_tracking_sync_at",
    }
)


class SyncConfigStore:
    """
    Acceso a la fila de SyncConfig.

    Las escrituras dentro del proceso se serializan con un ``asyncio.Lock``;
    el UPDATE es a nivel de campo, así dos escritores que tocan campos
    distintos no se pisan.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._write_lock = asyncio.Lock()

    async def _get_row(self, session: AsyncSession) -> SyncConfigRecord | None:
        result = await session.execute(select(SyncConfigRecord).order_by(SyncConfigRecord.id).limit(1))
        return result.scalar_one_or_none()

    async def load(self) -> SyncConfig:
        """
        Lee el snapshot actual de la configuración.

        Returns:
            SyncConfig: Snapshot inmutable

        Raises:
            ConfigurationException: Si la configuración no fue inicializada
        """
        async with self._session_factory() as session:
            row = await self._get_row(session)

        if row is None:
            raise ConfigurationException("Fulfillment sync configuration has not been initialized")

        return SyncConfig.model_validate(row)

    async def ensure_initialized(self, settings: Settings) -> SyncConfig:
        """
        Crea la configuración a partir de las opciones de arranque si no existe.

        Args:
            settings: Configuración de la aplicación

        Returns:
            SyncConfig: Snapshot existente o recién creado
        """
        async with self._write_lock:
            async with self._session_factory() as session:
                row = await self._get_row(session)
                if row is not None:
                    return SyncConfig.model_validate(row)

                row = SyncConfigRecord(
                    api_url=settings.FULFILLMENT_API_URL,
                    client_id=settings.FULFILLMENT_CLIENT_ID,
                    client_secret=settings.FULFILLMENT_CLIENT_SECRET,
                    company_id=settings.FULFILLMENT_COMPANY_ID,
                    enabled=settings.FULFILLMENT_SYNC_ENABLED,
                    inventory_interval_minutes=settings.INVENTORY_SYNC_INTERVAL_MINUTES,
                    tracking_interval_minutes=settings.TRACKING_SYNC_INTERVAL_MINUTES,
                    order_sync_trigger_states=settings.order_sync_trigger_states,
                    version=1,
                )
                session.add(row)
                await session.commit()
                await session.refresh(row)

        logger.info(f"✅ Fulfillment sync configuration created for {settings.FULFILLMENT_API_URL}")
        return SyncConfig.model_validate(row)

    async def update(self, **changes: Any) -> SyncConfig:
        """
        Aplica un parche a la configuración y devuelve el nuevo snapshot.

        Args:
            **changes: Campos a modificar

        Returns:
            SyncConfig: Snapshot con ``version`` incrementada

        Raises:
            ValidationException: Si se intenta modificar un campo desconocido
            ConfigurationException: Si la configuración no existe
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationException(
                f"Cannot update unknown config fields: {sorted(unknown)}",
                field=",".join(sorted(unknown)),
            )

        async with self._write_lock:
            async with self._session_factory() as session:
                row = await self._get_row(session)
                if row is None:
                    raise ConfigurationException("Fulfillment sync configuration has not been initialized")

                await session.execute(
                    update(SyncConfigRecord)
                    .where(SyncConfigRecord.id == row.id)
                    .values(**changes, version=SyncConfigRecord.version + 1, updated_at=datetime.now(UTC))
                )
                await session.commit()

                # Releer para obtener la versión efectiva
                session.expunge(row)
                row = await self._get_row(session)

        logger.debug(f"SyncConfig updated (version {row.version}): {sorted(changes)}")
        return SyncConfig.model_validate(row)
