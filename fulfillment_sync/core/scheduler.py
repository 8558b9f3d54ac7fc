"""
Motor de scheduling de los jobs de sincronización con el proveedor.

Cada tick revisa si toca correr:
- inventario: cuando pasó ``inventory_interval_minutes`` desde la última
  pasada (por defecto una vez al día)
- tracking: en días hábiles dentro de la ventana horaria configurada, cada
  ``tracking_interval_minutes``

Los jobs corren como tareas aparte para no bloquear el loop; los locks de
cada servicio evitan ejecuciones superpuestas.
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import pytz

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.domain.models import SyncConfig
from fulfillment_sync.utils.error_handler import AppException

settings = get_settings()
logger = logging.getLogger(__name__)

# Global scheduler state
_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None
_job_tasks: Set[asyncio.Task] = set()
_last_tick_at: Optional[datetime] = None


def utc_now() -> datetime:
    return datetime.now(UTC)


def _interval_elapsed(last_run: Optional[datetime], interval_minutes: int, now: datetime) -> bool:
    return last_run is None or now - last_run >= timedelta(minutes=interval_minutes)


def is_inventory_sync_due(config: SyncConfig, now: datetime) -> bool:
    """
    Args:
        config: Snapshot de configuración
        now: Momento actual (UTC, con zona)

    Returns:
        bool: True si corresponde una pasada de inventario
    """
    return config.enabled and _interval_elapsed(config.last_inventory_sync_at, config.inventory_interval_minutes, now)


def is_within_tracking_window(now: datetime) -> bool:
    """Lunes a viernes, entre TRACKING_SYNC_START_HOUR y TRACKING_SYNC_END_HOUR (hora local)."""
    local_now = now.astimezone(pytz.timezone(settings.TRACKING_SYNC_TIMEZONE))
    return (
        local_now.weekday() < 5
        and settings.TRACKING_SYNC_START_HOUR <= local_now.hour <= settings.TRACKING_SYNC_END_HOUR
    )


def is_tracking_sync_due(config: SyncConfig, now: datetime) -> bool:
    return (
        config.enabled
        and is_within_tracking_window(now)
        and _interval_elapsed(config.last_tracking_sync_at, config.tracking_interval_minutes, now)
    )


async def start_scheduler():
    """
    Inicia el loop del scheduler.
    """
    global _scheduler_running, _scheduler_task

    if _scheduler_running:
        logger.warning("Scheduler ya está ejecutándose")
        return

    logger.info(f"🕒 Iniciando scheduler (tick cada {settings.SCHEDULER_TICK_SECONDS}s)")
    _scheduler_running = True
    _scheduler_task = asyncio.create_task(_scheduler_loop())
    logger.info("✅ Scheduler iniciado correctamente")


async def stop_scheduler():
    """
    Detiene el scheduler y cancela los jobs en curso.
    """
    global _scheduler_running, _scheduler_task

    if not _scheduler_running:
        logger.info("Scheduler no está ejecutándose")
        return

    logger.info("🛑 Deteniendo scheduler")
    _scheduler_running = False

    tasks = [t for t in (_scheduler_task, *_job_tasks) if t is not None and not t.done()]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

    _scheduler_task = None
    _job_tasks.clear()
    logger.info("✅ Scheduler detenido correctamente")


async def _scheduler_loop():
    """
    Loop principal del scheduler.
    """
    while _scheduler_running:
        try:
            await _check_scheduled_syncs()
            await asyncio.sleep(settings.SCHEDULER_TICK_SECONDS)
        except asyncio.CancelledError:
            logger.info("Loop del scheduler cancelado")
            break
        except Exception as e:
            logger.error(f"Error en loop del scheduler: {e}", exc_info=True)
            await asyncio.sleep(settings.SCHEDULER_TICK_SECONDS)


async def _check_scheduled_syncs():
    """
    Lanza los jobs que correspondan según la configuración actual.
    """
    global _last_tick_at
    from fulfillment_sync.core.dependencies import get_container

    container = get_container()
    config = await container.config_store.load()
    now = utc_now()
    _last_tick_at = now

    if is_inventory_sync_due(config, now):
        _spawn_job("inventory", container.inventory_sync.scheduled_sync)

    if is_tracking_sync_due(config, now):
        _spawn_job("tracking", container.tracking_sync.scheduled_sync)


def _spawn_job(name: str, job: Callable[[], Awaitable[Any]]) -> None:
    if any(task.get_name() == f"scheduled-{name}" for task in _job_tasks if not task.done()):
        logger.debug(f"Scheduled {name} sync still running, not spawning another")
        return

    task = asyncio.create_task(_run_job(name, job), name=f"scheduled-{name}")
    _job_tasks.add(task)
    task.add_done_callback(_job_tasks.discard)


async def _run_job(name: str, job: Callable[[], Awaitable[Any]]) -> None:
    logger.info(f"⏰ Ejecutando sincronización programada de {name}")
    try:
        result = await job()
        if result is not None:
            logger.info(f"✅ Sincronización programada de {name} completada: {result.to_dict()}")
    except AppException as e:
        logger.warning(f"⚠️ Sincronización programada de {name} no completada: {e}")
    except Exception as e:
        logger.error(f"❌ Error en sincronización programada de {name}: {e}", exc_info=True)


def get_scheduler_status() -> Dict[str, Any]:
    """
    Obtiene el estado actual del scheduler.

    Returns:
        Dict: Información del estado
    """
    return {
        "running": _scheduler_running,
        "task_active": _scheduler_task is not None and not _scheduler_task.done(),
        "tick_seconds": settings.SCHEDULER_TICK_SECONDS,
        "last_tick_at": _last_tick_at.isoformat() if _last_tick_at else None,
        "active_jobs": sorted(task.get_name() for task in _job_tasks if not task.done()),
        "tracking_window": {
            "timezone": settings.TRACKING_SYNC_TIMEZONE,
            "start_hour": settings.TRACKING_SYNC_START_HOUR,
            "end_hour": settings.TRACKING_SYNC_END_HOUR,
            "weekdays_only": True,
        },
    }
