"""Nango OAuth broker client."""

from __future__ import annotations

import logging
from uuid import UUID

import httpx
from pydantic import ValidationError

from inbox.core.config import settings
from inbox.core.errors import UnexpectedError
from inbox.integrations.base import BrokerConnection
from inbox.services.http_service import send_provider_request

logger = logging.getLogger(__name__)


class NangoService:
    """Implements ``ConnectionBroker`` against the Nango REST API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.NANGO_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.NANGO_SECRET_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            transport=self._transport,
        )

    async def get_connection(
        self, connection_id: UUID, provider_config_key: str
    ) -> BrokerConnection | None:
        async with self._client() as client:
            response = await send_provider_request(
                lambda: client.get(
                    f"/connection/{connection_id}",
                    params={"provider_config_key": provider_config_key},
                ),
                provider="nango",
                action="fetch connection",
                allowed_statuses={404},
            )

        if response.status_code == 404:
            logger.info(
                "Nango connection not found connection_id=%s provider_config_key=%s",
                connection_id,
                provider_config_key,
            )
            return None

        try:
            return BrokerConnection.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise UnexpectedError(
                f"Failed to parse Nango connection {connection_id}: {exc}"
            ) from exc

    async def delete_connection(self, connection_id: UUID, provider_config_key: str) -> None:
        async with self._client() as client:
            response = await send_provider_request(
                lambda: client.delete(
                    f"/connection/{connection_id}",
                    params={"provider_config_key": provider_config_key},
                ),
                provider="nango",
                action="delete connection",
                allowed_statuses={404},
            )
        if response.status_code == 404:
            logger.info("Nango connection %s already deleted", connection_id)
