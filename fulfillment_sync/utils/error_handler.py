"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas del motor de
sincronización de fulfillment y utilidades para manejo consistente de errores.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Códigos 4xx que sí vale la pena reintentar
RETRYABLE_CLIENT_STATUS_CODES = {408, 429}


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Errores de conexión
    DATABASE_ERROR = "DATABASE_ERROR"
    FULFILLMENT_AUTH_FAILED = "FULFILLMENT_AUTH_FAILED"
    FULFILLMENT_API_ERROR = "FULFILLMENT_API_ERROR"
    FULFILLMENT_CONNECTION_FAILED = "FULFILLMENT_CONNECTION_FAILED"
    REDIS_CONNECTION_FAILED = "REDIS_CONNECTION_FAILED"

    # Errores de sincronización
    SYNC_FAILED = "SYNC_FAILED"
    SYNC_ALREADY_RUNNING = "SYNC_ALREADY_RUNNING"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"

    # Errores de API
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """String representation del error."""
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """
    Excepción para errores de validación de datos.
    """

    def __init__(self, message: str, field: str, invalid_value: Any = None, **kwargs):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
            }
        )


class ConfigurationException(AppException):
    """
    Excepción cuando la configuración de sincronización no existe o es inválida.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=503,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class DatabaseConnectionException(AppException):
    """
    Excepción para errores de conexión con la base de datos del motor.
    """

    def __init__(self, message: str, operation: str = "database", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=503,
            severity=ErrorSeverity.HIGH,
            is_retryable=True,
            **kwargs,
        )
        self.operation = operation
        self.details.update({"operation": operation})


class FulfillmentAPIException(AppException):
    """
    Excepción para errores de la API del proveedor de fulfillment.

    La posibilidad de reintento depende del tipo de falla: errores de red,
    timeouts, 5xx, 408 y 429 se reintentan; el resto de 4xx no.
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        response_body: Any = None,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de la API de fulfillment.

        Args:
            message: Mensaje de error
            api_response_code: Código HTTP devuelto (None si fue error de red)
            endpoint: Endpoint que falló
            response_body: Cuerpo de la respuesta, si lo hubo
            retry_after: Segundos sugeridos por el servidor para reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        error_code = ErrorCode.FULFILLMENT_API_ERROR
        severity = ErrorSeverity.MEDIUM

        if api_response_code is None:
            error_code = ErrorCode.FULFILLMENT_CONNECTION_FAILED
            is_retryable = True
        elif api_response_code == 429:
            error_code = ErrorCode.RATE_LIMIT_EXCEEDED
            severity = ErrorSeverity.LOW
            is_retryable = True
        elif api_response_code >= 500:
            severity = ErrorSeverity.HIGH
            is_retryable = True
        else:
            is_retryable = api_response_code in RETRYABLE_CLIENT_STATUS_CODES

        kwargs.setdefault("is_retryable", is_retryable)
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=api_response_code or 503,
            severity=severity,
            **kwargs,
        )

        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.retry_after = retry_after

        self.details.update(
            {
                "api_response_code": api_response_code,
                "endpoint": endpoint,
                "retry_after": retry_after,
            }
        )


class FulfillmentAuthenticationException(AppException):
    """
    No se pudo obtener un token válido del proveedor de fulfillment.

    Es una falla "suave": el ciclo actual se salta y se vuelve a intentar
    en el siguiente.
    """

    def __init__(self, message: str = "Unable to authenticate with fulfillment API", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.FULFILLMENT_AUTH_FAILED,
            status_code=401,
            severity=ErrorSeverity.MEDIUM,
            is_retryable=False,
            **kwargs,
        )


class SyncException(AppException):
    """
    Excepción para errores de sincronización.
    """

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        sync_stats: Optional[Dict[str, Any]] = None,
        retry_suggested: bool = True,
        **kwargs,
    ):
        """
        Inicializa la excepción de sincronización.

        Args:
            message: Mensaje de error
            service: Servicio involucrado (orders, inventory, tracking)
            operation: Operación que falló
            sync_stats: Estadísticas de la sincronización
            retry_suggested: Si se sugiere reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.SYNC_FAILED,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            is_retryable=retry_suggested,
            **kwargs,
        )

        self.service = service
        self.operation = operation
        self.sync_stats = sync_stats or {}

        self.details.update(
            {
                "service": service,
                "operation": operation,
                "sync_stats": sync_stats,
                "retry_suggested": retry_suggested,
            }
        )


class SyncAlreadyRunningException(AppException):
    """
    Se rechaza una sincronización porque otra del mismo tipo está en curso.
    """

    def __init__(self, job_name: str, **kwargs):
        super().__init__(
            message=f"{job_name} sync is already running",
            error_code=ErrorCode.SYNC_ALREADY_RUNNING,
            status_code=409,
            severity=ErrorSeverity.LOW,
            is_retryable=False,
            **kwargs,
        )
        self.job_name = job_name
        self.details.update({"job_name": job_name})


class OrderNotFoundException(AppException):
    """
    La orden local solicitada no existe o no tiene registro de sincronización.
    """

    def __init__(self, order_id: str, **kwargs):
        super().__init__(
            message=f"Order {order_id} not found",
            error_code=ErrorCode.ORDER_NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.order_id = order_id
        self.details.update({"order_id": order_id})


# === FUNCIONES DE UTILIDAD ===


def extract_error_message(exception: BaseException) -> str:
    """
    Extrae un mensaje legible de una falla de la API remota.

    Orden de preferencia: campo ``message`` del cuerpo de respuesta, campo
    ``error`` del cuerpo, mensaje de la excepción y finalmente un genérico.

    Args:
        exception: Excepción capturada

    Returns:
        str: Mensaje de error
    """
    body = getattr(exception, "response_body", None)
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if value:
                return str(value)

    message = getattr(exception, "message", None) or str(exception)
    return message or "Unknown error occurred"

