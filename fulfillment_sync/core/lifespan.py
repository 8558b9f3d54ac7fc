"""
Gestión del ciclo de vida de la aplicación FastAPI.

Startup: logging, base de datos, servicios, configuración inicial de
sincronización, worker de órdenes y scheduler. Shutdown en orden inverso.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fulfillment_sync.core.config import get_settings, validate_required_settings
from fulfillment_sync.core.dependencies import build_container, get_container, load_platform, set_container
from fulfillment_sync.core.logging_config import setup_logging
from fulfillment_sync.core.redis_client import close_redis_client, test_redis_connection
from fulfillment_sync.core.scheduler import start_scheduler, stop_scheduler
from fulfillment_sync.db.connection import close_database, get_db_connection, initialize_database

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"🚀 Iniciando {settings.APP_NAME} v{settings.APP_VERSION}...")

    try:
        # 1. Verificar configuración
        startup_verify_configuration()

        # 2. Conexiones
        await initialize_database()
        await startup_verify_redis()

        # 3. Servicios
        await startup_initialize_services(app)

        # 4. Tareas programadas
        if settings.ENABLE_SCHEDULED_SYNC:
            await start_scheduler()
        else:
            logger.info("Scheduler deshabilitado (ENABLE_SCHEDULED_SYNC=false)")

        logger.info("🎉 Aplicación iniciada correctamente")

    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await shutdown_cleanup()
        raise

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")
    await shutdown_cleanup()
    logger.info("👋 Aplicación cerrada correctamente")


def startup_verify_configuration():
    """Avisa si faltan credenciales del proveedor (las llamadas fallarán de forma suave)."""
    try:
        validate_required_settings()
        logger.info("✅ Configuración verificada")
    except ValueError as e:
        logger.warning(f"⚠️ {e}")


async def startup_verify_redis():
    """Sin Redis los locks de jobs usan archivos locales."""
    if not settings.REDIS_URL:
        logger.info("REDIS_URL no configurado, locks de jobs en archivos locales")
        return

    if await test_redis_connection():
        logger.info("✅ Redis disponible para locks de jobs")
    else:
        logger.warning("⚠️ Redis no responde, los jobs fallarán al tomar el lock")


async def startup_initialize_services(app: FastAPI):
    """Construye el contenedor de servicios e inicializa la configuración persistida."""
    platform = getattr(app.state, "platform", None) or load_platform(settings)

    container = build_container(platform, get_db_connection().session_factory)
    set_container(container)

    config = await container.config_store.ensure_initialized(settings)
    logger.info(
        f"✅ Sync config v{config.version} - enabled: {config.enabled}, "
        f"triggers: {config.order_sync_trigger_states}"
    )

    await container.client.initialize()
    await container.order_queue.start()


async def shutdown_cleanup():
    """Detiene tareas y libera recursos; cada paso es independiente."""
    await stop_scheduler()

    try:
        container = get_container()
    except RuntimeError:
        container = None

    if container is not None:
        await container.order_queue.stop()
        await container.client.close()
        set_container(None)

    await close_redis_client()
    await close_database()
