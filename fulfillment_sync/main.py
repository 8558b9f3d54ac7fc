"""
Fulfillment Sync Engine - punto de entrada de la aplicación FastAPI.

Sincroniza órdenes, inventario y tracking entre la plataforma de comercio
local y el proveedor de fulfillment.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.core.exception_handlers import configure_exception_handlers
from fulfillment_sync.core.lifespan import lifespan
from fulfillment_sync.core.routers import configure_all_routers
from fulfillment_sync.services.interfaces import IOrderPlatform

settings = get_settings()
logger = logging.getLogger(__name__)


def create_application(platform: Optional[IOrderPlatform] = None) -> FastAPI:
    """
    Factory de la aplicación FastAPI.

    Args:
        platform: Implementación de la plataforma local. Si es None se
            construye en el arranque desde ORDER_PLATFORM_FACTORY.

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    logger.info("🏗️ Creando aplicación FastAPI...")

    docs_enabled = settings.DEBUG or settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.APP_NAME,
        description="Sincronización de órdenes, inventario y tracking con el proveedor de fulfillment",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.platform = platform

    # 1. Manejadores de excepciones
    configure_exception_handlers(app)

    # 2. Routers y endpoints
    configure_all_routers(app)

    logger.info("✅ Aplicación FastAPI creada y configurada")
    return app


app = create_application()

app.state.app_info = {
    "name": settings.APP_NAME,
    "version": settings.APP_VERSION,
    "environment": settings.ENVIRONMENT,
    "debug": settings.DEBUG,
}


if __name__ == "__main__":
    """
    Para desarrollo:
    uvicorn fulfillment_sync.main:app --reload
    """
    logger.info("🚀 Iniciando aplicación desde main.py...")

    try:
        uvicorn.run(
            "fulfillment_sync.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.DEBUG,
            log_level=settings.LOG_LEVEL.lower(),
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("🛑 Aplicación detenida por el usuario")
