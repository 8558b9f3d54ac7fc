"""
Gestión del token OAuth2 (client credentials) del proveedor de fulfillment.

El token vive únicamente en la SyncConfig persistida: cada llamada lee el
snapshot actual y solo pide un token nuevo cuando el guardado expiró.
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout
from sqlalchemy.exc import SQLAlchemyError

from fulfillment_sync.core.config import get_settings
from fulfillment_sync.domain.models import SyncConfig
from fulfillment_sync.services.interfaces import ISyncConfigStore
from fulfillment_sync.utils.error_handler import AppException, FulfillmentAPIException

settings = get_settings()
logger = logging.getLogger(__name__)

TOKEN_PATH = "/api/token"


def utc_now() -> datetime:
    return datetime.now(UTC)


class TokenManager:
    """
    Obtiene y renueva el bearer token.

    Un fallo al renovar no lanza excepción: se devuelve ``None`` y el llamador
    salta el ciclo actual.
    """

    def __init__(self, config_store: ISyncConfigStore, expiry_margin_seconds: Optional[int] = None):
        self._config_store = config_store
        self._expiry_margin = (
            settings.TOKEN_EXPIRY_MARGIN_SECONDS if expiry_margin_seconds is None else expiry_margin_seconds
        )

    async def get_valid_token(self, config: Optional[SyncConfig] = None) -> Optional[str]:
        """
        Devuelve un token vigente, renovándolo si hace falta.

        Args:
            config: Snapshot ya leído por el llamador (se lee del store si es None)

        Returns:
            str | None: Token vigente o None si no se pudo obtener
        """
        config = config or await self._config_store.load()

        if config.access_token and config.token_expires_at and utc_now() < config.token_expires_at:
            return config.access_token

        return await self.refresh_token(config)

    async def refresh_token(self, config: SyncConfig) -> Optional[str]:
        """
        Pide un token nuevo y lo persiste con su expiración.

        Returns:
            str | None: Nuevo token, o None si la solicitud, la respuesta o el
                guardado fallaron
        """
        logger.info("🔄 Refreshing fulfillment API access token")
        requested_at = utc_now()

        try:
            data = await self._request_token(config)
            if not isinstance(data, dict):
                raise ValueError(f"unexpected token response: {str(data)[:200]}")
            token = data["access_token"]
            expires_in = int(data.get("expires_in") or 3600)
        except (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            FulfillmentAPIException,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            logger.error(f"❌ Failed to refresh fulfillment API token: {e}")
            return None

        if not token or not isinstance(token, str):
            logger.error("❌ Failed to refresh fulfillment API token: empty access_token in response")
            return None

        expires_at = requested_at + timedelta(seconds=expires_in - self._expiry_margin)
        try:
            await self._config_store.update(access_token=token, token_expires_at=expires_at)
        except (AppException, SQLAlchemyError, OSError) as e:
            logger.error(f"❌ Failed to persist refreshed fulfillment API token: {e}")
            return None

        logger.info(f"✅ Fulfillment API token refreshed, valid until {expires_at.isoformat()}")
        return token

    async def _request_token(self, config: SyncConfig) -> Dict[str, Any]:
        """
        POST form-encoded de client credentials con autenticación básica.

        Raises:
            FulfillmentAPIException: Si la respuesta no es 2xx
        """
        url = f"{config.api_url.rstrip('/')}{TOKEN_PATH}"
        timeout = ClientTimeout(total=settings.FULFILLMENT_HTTP_TIMEOUT)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                url,
                data={"grant_type": "client_credentials", "scope": "api"},
                auth=aiohttp.BasicAuth(config.client_id, config.client_secret),
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise FulfillmentAPIException(
                        f"Token request failed with HTTP {response.status}: {body[:200]}",
                        api_response_code=response.status,
                        endpoint=TOKEN_PATH,
                    )
                return await response.json(content_type=None)
