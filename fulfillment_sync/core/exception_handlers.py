"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Dan respuestas JSON consistentes para las excepciones de la aplicación y
para errores HTTP y no controlados.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.utils.error_handler import AppException, SyncException

settings = get_settings()
logger = logging.getLogger(__name__)


def _base_content(request: Request) -> dict:
    return {
        "error": True,
        "path": str(request.url.path),
        "timestamp": datetime.now(UTC).isoformat(),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"App Exception: {exc.message} - Code: {exc.error_code.value} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            **_base_content(request),
            "error_type": "application_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details if settings.DEBUG else None,
        },
    )


async def sync_exception_handler(request: Request, exc: SyncException) -> JSONResponse:
    """
    Manejador específico para errores de sincronización.
    """
    logger.error(
        f"Sync Exception: {exc.message} - Service: {exc.service} - Operation: {exc.operation} - URL: {request.url}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            **_base_content(request),
            "error_type": "synchronization_error",
            "error_code": exc.error_code.value,
            "message": exc.message,
            "service": exc.service,
            "operation": exc.operation,
            "retry_suggested": exc.is_retryable,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException (FastAPI y Starlette).
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            **_base_content(request),
            "error_type": "http_error",
            "status_code": exc.status_code,
            "message": exc.detail,
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.
    """
    logger.error(f"Unhandled Exception: {type(exc).__name__}: {exc} - URL: {request.url}", exc_info=exc)

    error_message = "Internal server error occurred"
    if settings.DEBUG:
        error_message = f"{type(exc).__name__}: {str(exc)}"

    return JSONResponse(
        status_code=500,
        content={
            **_base_content(request),
            "error_type": "internal_server_error",
            "message": error_message,
        },
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    app.add_exception_handler(SyncException, sync_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")
