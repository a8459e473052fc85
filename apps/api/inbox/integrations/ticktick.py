"""TickTick adapter: task source and sink provider."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import httpx
from pydantic import BaseModel

from inbox.core.config import settings
from inbox.db.enums import (
    DEFAULT_PROJECT_NAME,
    IntegrationProviderKind,
    NotificationStatus,
    TaskPriority,
    TaskStatus,
    ThirdPartyItemKind,
)
from inbox.db.models import IntegrationConnection, Task, ThirdPartyItem
from inbox.db.types import utcnow
from inbox.integrations.base import ProviderAdapter
from inbox.schemas.integration_connection import TickTickConfig, parse_config
from inbox.schemas.notification import NotificationDraft
from inbox.schemas.task import ProjectSummary, TaskCreation, TaskCreationDefaults, TaskDraft
from inbox.schemas.third_party import ThirdPartyItemCreate
from inbox.services.http_service import send_provider_request

logger = logging.getLogger(__name__)

TICKTICK_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"
TICKTICK_INBOX_PROJECT_ID = "inbox"
TICKTICK_STATUS_NORMAL = 0
TICKTICK_STATUS_COMPLETED = 2

# TickTick priorities: 0 none, 1 low, 3 medium, 5 high.
# "none" maps to no priority so connection defaults can apply.
_PRIORITY_FROM_TICKTICK = {5: TaskPriority.P1, 3: TaskPriority.P2, 1: TaskPriority.P3}
_PRIORITY_TO_TICKTICK = {
    **{priority: value for value, priority in _PRIORITY_FROM_TICKTICK.items()},
    TaskPriority.P4: 0,
}


def parse_ticktick_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    for fmt in (TICKTICK_DATETIME_FORMAT, "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt).astimezone(timezone.utc)
        except ValueError:
            continue
    logger.warning("Unparseable TickTick datetime %r", value)
    return None


def format_ticktick_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TICKTICK_DATETIME_FORMAT)


class TickTickItem(BaseModel):
    """A task as returned by the TickTick Open API, enriched with its project name."""

    id: str
    projectId: str
    projectName: str | None = None
    title: str
    content: str | None = None
    desc: str | None = None
    status: int = TICKTICK_STATUS_NORMAL
    priority: int = 0
    dueDate: str | None = None
    startDate: str | None = None
    isAllDay: bool | None = None
    timeZone: str | None = None
    tags: list[str] | None = None
    repeatFlag: str | None = None
    completedTime: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TICKTICK_STATUS_COMPLETED


class TickTickService(ProviderAdapter):
    """Non-incremental task provider: every sync returns the full list of open tasks."""

    provider_kind = IntegrationProviderKind.TICKTICK
    item_kind = ThirdPartyItemKind.TICKTICK_ITEM

    def __init__(
        self,
        *,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.TICKTICK_API_BASE_URL).rstrip("/")
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=self._transport,
        )

    async def _request(
        self,
        access_token: str,
        method: str,
        path: str,
        *,
        action: str,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        async with self._client(access_token) as client:
            response = await send_provider_request(
                lambda: client.request(method, path, json=json_body),
                provider="ticktick",
                action=action,
            )
        if not response.content:
            return None
        return response.json()

    @property
    def is_task_source(self) -> bool:
        return True

    def is_sync_incremental(self) -> bool:
        return False

    def _config(self, connection: IntegrationConnection) -> TickTickConfig:
        config = parse_config(connection.config, self.provider_kind)
        if not isinstance(config, TickTickConfig):
            return TickTickConfig()
        return config

    # =========================================================================
    # Sync
    # =========================================================================

    async def fetch_items(
        self,
        access_token: str,
        connection: IntegrationConnection,
        user_id: UUID,
    ) -> list[TickTickItem]:
        if not self._config(connection).sync_tasks_enabled:
            logger.info("TickTick tasks sync disabled for connection %s", connection.id)
            return []

        projects = await self.list_projects(access_token)
        items: list[TickTickItem] = []
        for project in projects:
            payload = await self._request(
                access_token,
                "GET",
                f"/project/{project.source_id}/data",
                action="fetch project tasks",
            )
            for raw in (payload or {}).get("tasks") or []:
                items.append(TickTickItem.model_validate({**raw, "projectName": project.name}))
        return items

    def into_third_party_item(
        self,
        record: TickTickItem,
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
        return {
            **data,
            "status": TICKTICK_STATUS_COMPLETED,
            "completedTime": format_ticktick_datetime(utcnow()),
        }

    def task_creation_defaults(self, connection: IntegrationConnection) -> TaskCreationDefaults:
        config = self._config(connection)
        return TaskCreationDefaults(
            project=config.default_project,
            due_at=config.default_due_at.to_datetime(utcnow()) if config.default_due_at else None,
            priority=config.default_priority,
        )

    def build_task(self, item: ThirdPartyItem) -> TaskDraft:
        record = TickTickItem.model_validate(item.data)
        return TaskDraft(
            title=record.title,
            body=record.content or record.desc or "",
            status=TaskStatus.DONE if record.is_completed else TaskStatus.ACTIVE,
            priority=_PRIORITY_FROM_TICKTICK.get(record.priority),
            due_at=parse_ticktick_datetime(record.dueDate),
            tags=record.tags or [],
            project=record.projectName,
            is_recurring=bool(record.repeatFlag),
            completed_at=parse_ticktick_datetime(record.completedTime),
        )

    def build_notification(
        self,
        item: ThirdPartyItem,
        task: Task | None,
        connection: IntegrationConnection,
    ) -> NotificationDraft | None:
        if task is None or not self._config(connection).create_notification_from_inbox_task:
            return None
        if task.project != DEFAULT_PROJECT_NAME:
            return None
        return NotificationDraft(title=task.title, status=NotificationStatus.UNREAD)

    # =========================================================================
    # Task writes
    # =========================================================================

    async def list_projects(self, access_token: str) -> list[ProjectSummary]:
        payload = await self._request(access_token, "GET", "/project", action="list projects")
        projects = [ProjectSummary(source_id=TICKTICK_INBOX_PROJECT_ID, name=DEFAULT_PROJECT_NAME)]
        for raw in payload or []:
            if raw.get("closed"):
                continue
            projects.append(ProjectSummary(source_id=str(raw["id"]), name=raw["name"]))
        return projects

    async def create_project(self, access_token: str, name: str) -> ProjectSummary:
        payload = await self._request(
            access_token, "POST", "/project", action="create project", json_body={"name": name}
        )
        return ProjectSummary(source_id=str(payload["id"]), name=payload.get("name") or name)

    async def create_task(self, access_token: str, creation: TaskCreation) -> TickTickItem:
        body: dict[str, Any] = {
            "title": creation.title,
            "content": creation.body,
            "projectId": creation.project.source_id,
            "priority": _PRIORITY_TO_TICKTICK[creation.priority],
        }
        if creation.due_at:
            body["dueDate"] = format_ticktick_datetime(creation.due_at)
            body["isAllDay"] = False
        payload = await self._request(
            access_token, "POST", "/task", action="create task", json_body=body
        )
        return TickTickItem.model_validate({**payload, "projectName": creation.project.name})

    async def update_task(
        self, access_token: str, item: ThirdPartyItem, patch: dict[str, Any]
    ) -> None:
        record = TickTickItem.model_validate(item.data)
        body: dict[str, Any] = {"id": record.id, "projectId": record.projectId}
        if "title" in patch:
            body["title"] = patch["title"]
        if "body" in patch:
            body["content"] = patch["body"]
        if "priority" in patch:
            body["priority"] = _PRIORITY_TO_TICKTICK[TaskPriority(patch["priority"])]
        if "due_at" in patch:
            body["dueDate"] = format_ticktick_datetime(patch["due_at"]) if patch["due_at"] else None
        if len(body) == 2:
            return
        await self._request(
            access_token, "POST", f"/task/{record.id}", action="update task", json_body=body
        )

    async def complete_task(self, access_token: str, item: ThirdPartyItem) -> None:
        record = TickTickItem.model_validate(item.data)
        await self._request(
            access_token,
            "POST",
            f"/project/{record.projectId}/task/{record.id}/complete",
            action="complete task",
        )

    async def uncomplete_task(self, access_token: str, item: ThirdPartyItem) -> None:
        record = TickTickItem.model_validate(item.data)
        await self._request(
            access_token,
            "POST",
            f"/task/{record.id}",
            action="uncomplete task",
            json_body={"id": record.id, "projectId": record.projectId, "status": TICKTICK_STATUS_NORMAL},
        )

    async def delete_task(self, access_token: str, item: ThirdPartyItem) -> None:
        record = TickTickItem.model_validate(item.data)
        await self._request(
            access_token,
            "DELETE",
            f"/project/{record.projectId}/task/{record.id}",
            action="delete task",
        )
