"""GitHub notifications adapter."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
from pydantic import BaseModel

from inbox.core.config import settings
from inbox.db.enums import IntegrationProviderKind, NotificationStatus, ThirdPartyItemKind
from inbox.db.models import IntegrationConnection, Task, ThirdPartyItem
from inbox.integrations.base import ProviderAdapter
from inbox.schemas.integration_connection import GithubConfig, parse_config
from inbox.schemas.notification import NotificationDetails, NotificationDraft
from inbox.schemas.third_party import ThirdPartyItemCreate
from inbox.services.http_service import send_provider_request

logger = logging.getLogger(__name__)


class GithubRepository(BaseModel):
    id: int
    full_name: str
    html_url: str | None = None


class GithubNotificationSubject(BaseModel):
    title: str
    url: str | None = None
    latest_comment_url: str | None = None
    type: str


class GithubNotification(BaseModel):
    """A notification thread as returned by ``GET /notifications``."""

    id: str
    repository: GithubRepository
    subject: GithubNotificationSubject
    reason: str
    unread: bool
    updated_at: datetime
    last_read_at: datetime | None = None
    url: str
    subscription_url: str | None = None


class GithubService(ProviderAdapter):
    """Notification-only provider: GitHub has no task concept here."""

    provider_kind = IntegrationProviderKind.GITHUB
    item_kind = ThirdPartyItemKind.GITHUB_NOTIFICATION

    def __init__(
        self,
        *,
        base_url: str | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.GITHUB_API_BASE_URL).rstrip("/")
        self.page_size = page_size or settings.GITHUB_PAGE_SIZE
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            },
            transport=self._transport,
        )

    def is_sync_incremental(self) -> bool:
        # /notifications returns the full current set of unread threads
        return False

    async def fetch_items(
        self,
        access_token: str,
        connection: IntegrationConnection,
        user_id: UUID,
    ) -> list[GithubNotification]:
        config = parse_config(connection.config, self.provider_kind)
        if isinstance(config, GithubConfig) and not config.sync_notifications_enabled:
            logger.info("GitHub notifications sync disabled for connection %s", connection.id)
            return []

        notifications: list[GithubNotification] = []
        page = 1
        async with self._client(access_token) as client:
            while True:
                response = await send_provider_request(
                    lambda: client.get(
                        "/notifications",
                        params={"page": page, "per_page": self.page_size},
                    ),
                    provider="github",
                    action="fetch notifications",
                )
                batch = [GithubNotification.model_validate(raw) for raw in response.json()]
                notifications.extend(batch)
                if len(batch) < self.page_size:
                    break
                page += 1
        return notifications

    def into_third_party_item(
        self,
        record: GithubNotification,
        *,
        user_id: UUID,
        integration_connection_id: UUID,
    ) -> ThirdPartyItemCreate:
        return ThirdPartyItemCreate(
            source_id=record.id,
            kind=self.item_kind,
            data=record.model_dump(mode="json"),
            user_id=user_id,
            integration_connection_id=integration_connection_id,
        )

    def mark_as_done(self, data: dict[str, Any]) -> dict[str, Any]:
        return {**data, "unread": False}

    def build_notification(
        self,
        item: ThirdPartyItem,
        task: Task | None,
        connection: IntegrationConnection,
    ) -> NotificationDraft | None:
        notification = GithubNotification.model_validate(item.data)
        return NotificationDraft(
            title=notification.subject.title,
            status=NotificationStatus.UNREAD if notification.unread else NotificationStatus.READ,
        )

    async def fetch_notification_details(
        self, access_token: str, item: ThirdPartyItem
    ) -> NotificationDetails | None:
        notification = GithubNotification.model_validate(item.data)
        if not notification.subject.url:
            return None
        async with self._client(access_token) as client:
            response = await send_provider_request(
                lambda: client.get(notification.subject.url),
                provider="github",
                action="fetch notification details",
                allowed_statuses={404},
            )
        if response.status_code == 404:
            return None
        payload = response.json()
        return NotificationDetails(
            url=payload.get("html_url"),
            state=payload.get("state"),
            extra={
                key: payload[key]
                for key in ("number", "merged", "draft", "user")
                if key in payload
            },
        )

    async def delete_notification_from_source(self, access_token: str, item: ThirdPartyItem) -> None:
        # Marking the thread as read removes it from the unread set
        async with self._client(access_token) as client:
            await send_provider_request(
                lambda: client.patch(f"/notifications/threads/{item.source_id}"),
                provider="github",
                action="mark notification thread as read",
            )

