"""
Cliente Redis compartido.

Se usa para los locks de jobs de sincronización cuando REDIS_URL está
configurado.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from fulfillment_sync.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Global Redis client instance
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Returns a Redis client instance.

    Returns:
        redis.Redis: Redis client instance

    Raises:
        RuntimeError: If Redis URL is not configured
    """
    global _redis_client

    if not settings.REDIS_URL:
        raise RuntimeError("Redis URL not configured")

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        )
        logger.debug("Redis client instance created")

    return _redis_client


async def test_redis_connection() -> bool:
    """
    Verifica la conectividad con Redis.

    Returns:
        bool: True si responde a PING
    """
    if not settings.REDIS_URL:
        return False

    try:
        return bool(await get_redis_client().ping())
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis no disponible: {e}")
        return False


async def close_redis_client() -> None:
    """Cierra el cliente global si existe."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis client closed")
