"""
Locks con lease (TTL) para los jobs de sincronización.

Cada tipo de job (inventario, tracking) se protege con un lock identificado
por nombre. El lock expira solo después de su TTL, así un proceso que muere a
mitad de una pasada no bloquea las siguientes para siempre.

Backends:
- Redis (``SET NX PX`` + liberación comparando token) cuando hay REDIS_URL
- Archivo local con creación exclusiva como fallback
"""

import asyncio
import json
import logging
import os
import time
import uuid
from typing import Dict, Optional, Tuple

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.utils.error_handler import SyncAlreadyRunningException

settings = get_settings()
logger = logging.getLogger(__name__)

# Borra la llave solo si el valor sigue siendo nuestro token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class JobLock:
    """
    Lock base para un job de sincronización.

    Uso:
        async with lock:
            ...  # solo una pasada del job a la vez

    Si el lock está tomado, ``__aenter__`` lanza SyncAlreadyRunningException.

    Cada adquisición genera su propio token. El ``async with`` guarda el token
    de la tarea que entró, así una pasada que sobrevive a su TTL no puede
    liberar el lease que otra pasada tomó después con la misma instancia.
    """

    def __init__(self, job_name: str, ttl_seconds: int):
        self.job_name = job_name
        self.ttl_seconds = ttl_seconds
        self._token: Optional[str] = None
        self.acquired_at: Optional[float] = None
        self._leases: Dict[Optional[asyncio.Task], Tuple[str, float]] = {}

    async def _try_acquire(self) -> Optional[str]:
        """Devuelve el token del lease nuevo, o None si el lock está vigente."""
        raise NotImplementedError

    async def _release_token(self, token: str, acquired_at: float) -> None:
        """Libera el lease solo si sigue perteneciendo a ``token``."""
        raise NotImplementedError

    async def is_locked(self) -> bool:
        raise NotImplementedError

    async def acquire(self) -> bool:
        """
        Toma el lock fuera de un ``async with``.

        Returns:
            bool: True si se adquirió
        """
        token = await self._try_acquire()
        if token is None:
            return False
        self._token = token
        self.acquired_at = time.time()
        return True

    async def release(self) -> None:
        """Libera el lease tomado con ``acquire()``."""
        if self._token is None:
            return
        token, acquired_at = self._token, self.acquired_at or time.time()
        self._token = None
        self.acquired_at = None
        await self._release_token(token, acquired_at)

    async def __aenter__(self) -> "JobLock":
        token = await self._try_acquire()
        if token is None:
            raise SyncAlreadyRunningException(self.job_name)
        self._leases[asyncio.current_task()] = (token, time.time())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        lease = self._leases.pop(asyncio.current_task(), None)
        if lease is not None:
            await self._release_token(*lease)

    @staticmethod
    def _held_for(acquired_at: float) -> float:
        return time.time() - acquired_at


class FileJobLock(JobLock):
    """
    Lock basado en archivo con expiración.

    El archivo guarda el token del dueño y el timestamp de expiración.
    """

    def __init__(self, job_name: str, ttl_seconds: int, lock_dir: Optional[str] = None):
        super().__init__(job_name, ttl_seconds)
        safe_name = job_name.replace("/", "_").replace(":", "_")
        self.lock_file = os.path.join(lock_dir or settings.LOCK_DIRECTORY, f"fulfillment_sync_{safe_name}.lock")

    def _read_lock(self) -> Optional[dict]:
        try:
            with open(self.lock_file, "r") as f:
                return json.loads(f.read())
        except FileNotFoundError:
            return None
        except (ValueError, OSError):
            # Archivo corrupto: se trata como expirado
            return {"token": None, "expires_at": 0}

    async def _try_acquire(self) -> Optional[str]:
        """
        Intenta tomar el lock.

        Returns:
            str | None: Token del lease, o None si otro dueño lo tiene vigente
        """
        current = self._read_lock()
        if current is not None:
            if time.time() < float(current.get("expires_at", 0)):
                logger.debug(f"Lock '{self.job_name}' already held and valid")
                return None

            logger.warning(f"⚠️ Lock '{self.job_name}' expired, reclaiming stale lease")
            try:
                os.remove(self.lock_file)
            except FileNotFoundError:
                pass

        token = uuid.uuid4().hex
        try:
            # 'x' falla si el archivo ya existe
            with open(self.lock_file, "x") as f:
                f.write(json.dumps({"token": token, "expires_at": time.time() + self.ttl_seconds}))
        except FileExistsError:
            logger.debug(f"❌ Failed to acquire lock '{self.job_name}' - race condition")
            return None

        logger.debug(f"🔒 Acquired lock '{self.job_name}'")
        return token

    async def _release_token(self, token: str, acquired_at: float) -> None:
        current = self._read_lock()
        if current is not None and current.get("token") == token:
            try:
                os.remove(self.lock_file)
            except FileNotFoundError:
                pass
            logger.debug(f"🔓 Released lock '{self.job_name}' (held for {self._held_for(acquired_at):.2f}s)")
        else:
            logger.warning(f"⚠️ Lock '{self.job_name}' was reclaimed by another owner before release")

    async def is_locked(self) -> bool:
        current = self._read_lock()
        return current is not None and time.time() < float(current.get("expires_at", 0))


class RedisJobLock(JobLock):
    """
    Lock en Redis con ``SET NX PX``.
    """

    def __init__(self, job_name: str, ttl_seconds: int, redis_client=None):
        super().__init__(job_name, ttl_seconds)
        self.key = f"lock:fulfillment:{job_name}"
        self._redis = redis_client

    @property
    def redis(self):
        if self._redis is None:
            from fulfillment_sync.core.redis_client import get_redis_client

            self._redis = get_redis_client()
        return self._redis

    async def _try_acquire(self) -> Optional[str]:
        token = uuid.uuid4().hex
        acquired = await self.redis.set(self.key, token, nx=True, px=self.ttl_seconds * 1000)
        if not acquired:
            logger.debug(f"Lock '{self.job_name}' already held in Redis")
            return None

        logger.debug(f"🔒 Acquired Redis lock '{self.job_name}'")
        return token

    async def _release_token(self, token: str, acquired_at: float) -> None:
        released = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, token)
        if released:
            logger.debug(f"🔓 Released Redis lock '{self.job_name}' (held for {self._held_for(acquired_at):.2f}s)")
        else:
            logger.warning(f"⚠️ Redis lock '{self.job_name}' expired before release")

    async def is_locked(self) -> bool:
        return bool(await self.redis.exists(self.key))


def create_job_lock(job_name: str, ttl_seconds: int) -> JobLock:
    """
    Crea el lock apropiado según la configuración.

    Args:
        job_name: Nombre del job (llave del lock)
        ttl_seconds: Duración máxima del lease

    Returns:
        JobLock: Lock en Redis si hay REDIS_URL, de archivo si no
    """
    if settings.REDIS_URL:
        return RedisJobLock(job_name, ttl_seconds)
    return FileJobLock(job_name, ttl_seconds)
