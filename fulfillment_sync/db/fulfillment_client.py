"""
Cliente HTTP de la API REST del proveedor de fulfillment.

Cada request obtiene primero un token vigente del TokenManager y lo envía
como bearer. Los errores se traducen a FulfillmentAPIException, cuya
posibilidad de reintento depende del código HTTP.
"""

import asyncio
import json
import logging
import time
from typing import Any, List, Optional
from urllib.parse import quote

import aiohttp
from aiohttp import ClientTimeout

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.core.logging_config import log_api_call
from fulfillment_sync.db.token_manager import TokenManager
from fulfillment_sync.domain.models import (
    FulfillmentOrderPayload,
    RemoteCallResult,
    RemoteOrderStatus,
)
from fulfillment_sync.services.interfaces import ISyncConfigStore
from fulfillment_sync.utils.error_handler import FulfillmentAPIException, FulfillmentAuthenticationException
from fulfillment_sync.utils.retry_handler import (
    RetryHandler,
    create_fulfillment_retry_handler,
    create_order_retry_handler,
)

settings = get_settings()
logger = logging.getLogger(__name__)


class FulfillmentAPIClient:
    """
    Cliente para la API del proveedor de fulfillment.
    """

    def __init__(
        self,
        config_store: ISyncConfigStore,
        token_manager: TokenManager,
        order_retry_handler: Optional[RetryHandler] = None,
        read_retry_handler: Optional[RetryHandler] = None,
    ):
        self._config_store = config_store
        self._token_manager = token_manager
        self._order_retry = order_retry_handler or create_order_retry_handler()
        self._read_retry = read_retry_handler or create_fulfillment_retry_handler()
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self):
        """Crea la sesión HTTP compartida."""
        if self.session is not None:
            return

        timeout = ClientTimeout(total=settings.FULFILLMENT_HTTP_TIMEOUT)
        connector = aiohttp.TCPConnector(limit=20, limit_per_host=10)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}",
            },
        )
        logger.info("✅ Fulfillment API client initialized")

    async def close(self):
        """Cierra la sesión HTTP."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Fulfillment API client closed")

    async def ensure_authenticated(self) -> bool:
        """
        Verifica que haya un token vigente (renovándolo si hace falta).

        Returns:
            bool: False si no se pudo autenticar
        """
        config = await self._config_store.load()
        return await self._token_manager.get_valid_token(config) is not None

    async def _request(self, method: str, path: str, json_body: Any = None) -> Any:
        """
        Ejecuta un request autenticado.

        Raises:
            FulfillmentAuthenticationException: Si no hay token disponible
            FulfillmentAPIException: Error HTTP o de red
        """
        config = await self._config_store.load()
        token = await self._token_manager.get_valid_token(config)
        if not token:
            raise FulfillmentAuthenticationException()

        if self.session is None:
            await self.initialize()

        url = f"{config.api_url.rstrip('/')}{path}"
        start_time = time.time()

        try:
            async with self.session.request(
                method, url, json=json_body, headers={"Authorization": f"Bearer {token}"}
            ) as response:
                body = self._parse_body(await response.text())
                log_api_call(method, url, response.status, time.time() - start_time)

                if response.status >= 400:
                    retry_after = response.headers.get("Retry-After")
                    raise FulfillmentAPIException(
                        f"HTTP {response.status} from {method} {path}",
                        api_response_code=response.status,
                        endpoint=path,
                        response_body=body,
                        retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    )

                return body

        except aiohttp.ClientError as e:
            raise FulfillmentAPIException(f"Network error calling {path}: {e}", endpoint=path) from e
        except asyncio.TimeoutError as e:
            raise FulfillmentAPIException(
                f"Request to {path} timed out after {settings.FULFILLMENT_HTTP_TIMEOUT}s", endpoint=path
            ) from e

    @staticmethod
    def _parse_body(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return {"message": text}

    # === OPERACIONES ===

    async def create_order(self, payload: FulfillmentOrderPayload) -> RemoteCallResult:
        """
        Crea la orden en el proveedor, con reintentos y backoff.

        Args:
            payload: Orden a crear

        Returns:
            RemoteCallResult: Éxito con OrderId, o error con el mensaje extraído
        """
        outcome = await self._order_retry.execute_with_result(
            self._request,
            "POST",
            "/api/orders",
            json_body=payload.to_api(),
            context={"order_number": payload.order_number},
        )

        if not outcome.success:
            return RemoteCallResult(success=False, error=outcome.error, attempts=outcome.attempts)

        data = outcome.result if isinstance(outcome.result, dict) else {}
        order_id = data.get("OrderId")
        return RemoteCallResult(
            success=True,
            remote_order_id=str(order_id) if order_id is not None else None,
            attempts=outcome.attempts,
            response=data,
        )

    async def get_order_status(self, order_number: str) -> RemoteOrderStatus:
        """
        Consulta estado y tracking de una orden.

        Raises:
            FulfillmentAPIException: Si la consulta falla tras los reintentos
        """
        data = await self._read_retry.execute(
            self._request, "GET", f"/api/orders/{quote(order_number, safe='')}/status"
        )
        return RemoteOrderStatus.from_api(data or {})

    async def get_inventory(self, sku: Optional[str] = None) -> List[Any]:
        """
        Consulta el inventario completo o el de un SKU.

        La API puede devolver un objeto o una lista; siempre se normaliza a lista.
        Los items se devuelven tal como llegan: ``RemoteInventoryItem.from_api``
        los valida uno por uno, así un item mal formado no invalida el resto.

        Raises:
            FulfillmentAPIException: Si la consulta falla tras los reintentos
        """
        path = f"/api/inventory/{quote(sku, safe='')}" if sku else "/api/inventory"
        data = await self._read_retry.execute(self._request, "GET", path)

        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise FulfillmentAPIException(f"Unexpected inventory response: {str(data)[:200]}", endpoint=path)
        return data
