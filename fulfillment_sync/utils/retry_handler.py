"""
Sistema de manejo de reintentos.

Este módulo implementa la estrategia de retry con backoff exponencial usada
para las llamadas a la API de fulfillment, decidiendo si reintentar según el
tipo de error.
"""

import asyncio
import inspect
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.utils.error_handler import AppException, FulfillmentAPIException, extract_error_message

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Política de reintentos configurable.

    El delay antes del reintento ``n`` (contando desde 0) es
    ``base_delay * exponential_base ** n``.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retry_on: Optional[List[Type[BaseException]]] = None,
    ):
        """
        Inicializa la política de reintentos.

        Args:
            max_retries: Reintentos después del primer intento
            base_delay: Delay base en segundos
            max_delay: Delay máximo en segundos
            exponential_base: Base para backoff exponencial
            jitter: Si agregar jitter aleatorio
            retry_on: Excepciones no-AppException en las que reintentar
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or [ConnectionError, asyncio.TimeoutError]

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, exception: BaseException, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Número de intento actual (desde 1)

        Returns:
            bool: True si debe reintentar
        """
        if attempt >= self.max_attempts:
            return False

        if isinstance(exception, AppException):
            return exception.is_retryable

        return any(isinstance(exception, retry_exc) for retry_exc in self.retry_on)

    def calculate_delay(self, retry_index: int, exception: Optional[BaseException] = None) -> float:
        """
        Calcula el delay antes del siguiente intento.

        Args:
            retry_index: Índice del reintento (0 para el primero)
            exception: Excepción que causó el retry (opcional)

        Returns:
            float: Segundos a esperar
        """
        # Rate limiting: respetar Retry-After del servidor
        if isinstance(exception, FulfillmentAPIException) and exception.retry_after:
            return min(float(exception.retry_after), self.max_delay)

        delay = self.base_delay * (self.exponential_base**retry_index)

        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(delay, 0)


@dataclass
class RetryResult(Generic[T]):
    """Resultado de una ejecución con reintentos."""

    success: bool
    result: Optional[T] = None
    error: Optional[str] = None
    attempts: int = 0
    exception: Optional[BaseException] = None


class RetryHandler:
    """
    Manejador principal de reintentos.
    """

    def __init__(self, name: str, retry_policy: Optional[RetryPolicy] = None):
        """
        Inicializa el manejador de reintentos.

        Args:
            name: Nombre identificativo del handler
            retry_policy: Política de reintentos
        """
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self.metrics = self._empty_metrics()

    async def execute_with_result(
        self, func: Callable, *args, context: Optional[Dict[str, Any]] = None, **kwargs
    ) -> RetryResult:
        """
        Ejecuta una función con reintentos sin propagar la falla final.

        Args:
            func: Función a ejecutar
            *args: Argumentos posicionales
            context: Contexto adicional para logging
            **kwargs: Argumentos con nombre

        Returns:
            RetryResult: Éxito, resultado o mensaje de error y número de intentos
        """
        context = context or {}
        start_time = time.time()
        last_exception: Optional[BaseException] = None
        attempt = 0

        for attempt in range(1, self.retry_policy.max_attempts + 1):
            self.metrics["total_attempts"] += 1

            try:
                logger.debug(
                    f"Executing {self.name} - Attempt {attempt}/{self.retry_policy.max_attempts}",
                    extra={"context": context},
                )

                result = await self._execute_func(func, *args, **kwargs)

                duration = time.time() - start_time
                self._record_success(duration)
                logger.debug(f"Successfully executed {self.name} in {duration:.2f}s")

                return RetryResult(success=True, result=result, attempts=attempt)

            except Exception as e:
                last_exception = e
                self.metrics["total_failures"] += 1

                if not self.retry_policy.should_retry(e, attempt):
                    if attempt < self.retry_policy.max_attempts:
                        logger.warning(
                            f"Not retrying {self.name} - Exception: {type(e).__name__}: {str(e)}",
                            extra={"attempt": attempt, "context": context},
                        )
                    break

                delay = self.retry_policy.calculate_delay(attempt - 1, e)
                self.metrics["total_retries"] += 1

                logger.info(
                    f"🔄 Retrying {self.name} in {delay:.2f}s - "
                    f"Attempt {attempt + 1}/{self.retry_policy.max_attempts}",
                    extra={"exception": str(e), "delay": delay, "context": context},
                )

                await asyncio.sleep(delay)

        logger.error(
            f"❌ All retry attempts failed for {self.name}",
            extra={"attempts": attempt, "last_exception": str(last_exception), "context": context},
        )

        return RetryResult(
            success=False,
            error=extract_error_message(last_exception) if last_exception else "Unknown error occurred",
            attempts=attempt,
            exception=last_exception,
        )

    async def execute(self, func: Callable, *args, context: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """
        Ejecuta una función con reintentos.

        Returns:
            Any: Resultado de la función

        Raises:
            Exception: La última excepción si todos los reintentos fallan
        """
        outcome = await self.execute_with_result(func, *args, context=context, **kwargs)
        if outcome.success:
            return outcome.result
        raise outcome.exception  # type: ignore[misc]

    async def _execute_func(self, func: Callable, *args, **kwargs) -> Any:
        """Ejecuta la función, manejando tanto sync como async."""
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result

    def _record_success(self, duration: float):
        self.metrics["total_successes"] += 1
        total_ops = self.metrics["total_successes"]
        if total_ops == 1:
            self.metrics["avg_duration"] = duration
        else:
            self.metrics["avg_duration"] = (self.metrics["avg_duration"] * (total_ops - 1) + duration) / total_ops

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            "total_attempts": 0,
            "total_successes": 0,
            "total_failures": 0,
            "total_retries": 0,
            "avg_duration": 0.0,
        }

    def get_metrics(self) -> Dict[str, Any]:
        """
        Obtiene métricas del handler.

        Returns:
            Dict: Métricas actuales
        """
        total = self.metrics["total_attempts"]
        success_rate = (self.metrics["total_successes"] / total * 100) if total > 0 else 0

        return {
            **self.metrics,
            "success_rate": round(success_rate, 2),
            "handler_name": self.name,
        }

    def reset_metrics(self):
        """Reinicia las métricas."""
        self.metrics = self._empty_metrics()


# === FACTORY FUNCTIONS ===


def create_order_retry_handler() -> RetryHandler:
    """
    Crea el handler usado para crear órdenes en el proveedor de fulfillment.

    Returns:
        RetryHandler: Handler configurado (3 reintentos, 2s base por defecto)
    """
    retry_policy = RetryPolicy(
        max_retries=settings.ORDER_SYNC_MAX_RETRIES,
        base_delay=settings.ORDER_SYNC_RETRY_BASE_DELAY,
        max_delay=settings.RETRY_MAX_DELAY_SECONDS,
    )
    return RetryHandler(name="fulfillment_create_order", retry_policy=retry_policy)


def create_fulfillment_retry_handler(name: str = "fulfillment_api") -> RetryHandler:
    """
    Crea un handler para lecturas de la API de fulfillment.

    Returns:
        RetryHandler: Handler configurado con la política general de reintentos
    """
    retry_policy = RetryPolicy(
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_DELAY_SECONDS,
        max_delay=settings.RETRY_MAX_DELAY_SECONDS,
    )
    return RetryHandler(name=name, retry_policy=retry_policy)
