# fulfillment_sync/db/connection.py
"""
Clase ConnDB para gestión exclusiva de conexiones a la base de datos del motor.

Esta clase maneja únicamente la conexión, configuración del pool,
creación del esquema y ciclo de vida de las conexiones.
"""

import logging
import time
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.db.models import Base
from fulfillment_sync.utils.error_handler import DatabaseConnectionException

settings = get_settings()
logger = logging.getLogger(__name__)


class ConnDB:
    """
    Gestión de conexiones a la base de datos (patrón Singleton).
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        """Implementa patrón Singleton."""
        if cls._instance is None:
            cls._instance = super(ConnDB, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        """Inicializa la clase ConnDB."""
        if not self._initialized:
            self.engine: Optional[AsyncEngine] = None
            self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
            self.connection_string = settings.DATABASE_URL
            self._connection_tested = False
            ConnDB._initialized = True
            logger.info("ConnDB instance created")

    async def initialize(self, create_schema: bool = True):
        """
        Inicializa el engine, el pool de conexiones y el esquema.

        Args:
            create_schema: Si crear las tablas que no existan

        Raises:
            DatabaseConnectionException: Si falla la inicialización
        """
        if self.engine is not None:
            logger.info("Database connection already initialized")
            return

        logger.info("Initializing database connection...")

        try:
            self.engine = create_async_engine(
                self.connection_string,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=settings.DATABASE_ECHO,
            )

            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

            if create_schema:
                async with self.engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)

            await self._test_connection()

            logger.info("✅ Database connection initialized successfully")

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"❌ Failed to initialize database connection: {e}")
            await self._cleanup_failed_initialization()
            raise DatabaseConnectionException(
                message=f"Failed to initialize database connection: {str(e)}",
                operation="initialization",
            ) from e

    async def _test_connection(self):
        async with self.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            if result.scalar() != 1:
                raise DatabaseConnectionException(
                    message="Connection test returned unexpected value",
                    operation="test",
                )
        self._connection_tested = True

    async def _cleanup_failed_initialization(self):
        if self.engine:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None
        self._connection_tested = False

    def get_session(self) -> AsyncSession:
        """
        Obtiene una nueva sesión de base de datos.

        Returns:
            AsyncSession: Sesión asíncrona de SQLAlchemy

        Raises:
            DatabaseConnectionException: Si no hay conexión inicializada
        """
        if not self.is_initialized():
            raise DatabaseConnectionException(
                message="Database connection not initialized. Call initialize() first.",
                operation="session_creation",
            )

        return self.session_factory()

    def is_initialized(self) -> bool:
        """Verifica si la conexión está inicializada y probada."""
        return self.engine is not None and self.session_factory is not None and self._connection_tested

    async def test_connection(self) -> bool:
        """
        Prueba la conexión a la base de datos de forma no destructiva.

        Returns:
            bool: True si la conexión funciona correctamente
        """
        if not self.is_initialized():
            return False

        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Connection test failed: {e}")
            return False

    async def close(self):
        """Cierra la conexión y limpia todos los recursos."""
        logger.info("Closing database connection...")

        if self.engine:
            await self.engine.dispose()
            logger.info("Database engine disposed")

        self.engine = None
        self.session_factory = None
        self._connection_tested = False

    async def health_check(self) -> dict:
        """
        Realiza un health check de la conexión.

        Returns:
            dict: Estado de salud de la conexión
        """
        start_time = time.time()
        test_passed = await self.test_connection()

        return {
            "connection_initialized": self.is_initialized(),
            "test_passed": test_passed,
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }

    def __repr__(self) -> str:
        return (
            f"ConnDB(initialized={self.is_initialized()}, "
            f"engine={self.engine is not None}, "
            f"session_factory={self.session_factory is not None})"
        )


# Instancia global singleton
_conn_db_instance = None


def get_db_connection() -> ConnDB:
    """
    Obtiene la instancia singleton de ConnDB.

    Returns:
        ConnDB: Instancia de conexión a base de datos
    """
    global _conn_db_instance

    if _conn_db_instance is None:
        _conn_db_instance = ConnDB()

    return _conn_db_instance


async def initialize_database():
    """Función de conveniencia para inicializar la base de datos."""
    await get_db_connection().initialize()


async def close_database():
    """Función de conveniencia para cerrar la base de datos."""
    await get_db_connection().close()
