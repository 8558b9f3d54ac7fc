"""
Registro de routers y endpoints base de la aplicación.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from fulfillment_sync.api.v1.endpoints.fulfillment import router as fulfillment_router
from fulfillment_sync.core.config import get_settings
from fulfillment_sync.core.redis_client import test_redis_connection
from fulfillment_sync.core.scheduler import get_scheduler_status
from fulfillment_sync.db.connection import get_db_connection

settings = get_settings()
logger = logging.getLogger(__name__)

API_V1_PREFIX = "/api/v1"


def create_root_endpoints(app: FastAPI) -> None:
    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        """Información básica de la API."""
        return {
            "message": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "timestamp": datetime.now(UTC).isoformat(),
            "endpoints": {
                "health": "/health",
                "fulfillment": f"{API_V1_PREFIX}/fulfillment",
            },
        }


def create_health_endpoints(app: FastAPI) -> None:
    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check():
        """
        Estado de la base de datos y del scheduler.

        Returns:
            JSONResponse 200 si la base responde, 503 si no
        """
        try:
            database = await get_db_connection().health_check()
            healthy = database["test_passed"]
            redis_status = "disabled"
            if settings.REDIS_URL:
                redis_status = "healthy" if await test_redis_connection() else "unhealthy"

            return JSONResponse(
                status_code=200 if healthy else 503,
                content={
                    "status": "healthy" if healthy else "unhealthy",
                    "version": settings.APP_VERSION,
                    "timestamp": datetime.now(UTC).isoformat(),
                    "environment": settings.ENVIRONMENT,
                    "services": {
                        "database": database,
                        "redis": redis_status,
                        "scheduler": get_scheduler_status(),
                    },
                },
            )

        except Exception as e:
            logger.error(f"Error en health check: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.now(UTC).isoformat(),
                    "version": settings.APP_VERSION,
                },
            )


def configure_all_routers(app: FastAPI) -> None:
    """
    Registra endpoints base y routers de la API.

    Args:
        app: Instancia de FastAPI
    """
    create_root_endpoints(app)
    create_health_endpoints(app)

    app.include_router(fulfillment_router, prefix=f"{API_V1_PREFIX}/fulfillment", tags=["Fulfillment"])

    logger.info("✅ Routers configurados correctamente")
