"""Task service: derive tasks from items and propagate user edits to providers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from inbox.core.errors import ForbiddenError, ItemNotFoundError
from inbox.db.enums import (
    DEFAULT_PROJECT_NAME,
    DEFAULT_TASK_PRIORITY,
    TaskStatus,
)
from inbox.db.models import Task, ThirdPartyItem
from inbox.db.types import utcnow
from inbox.schemas.task import TaskCreationDefaults, TaskDraft, TaskPatch
from inbox.services import notification_service
from inbox.services.upsert import UpdateStatus, UpsertStatus, apply_changes

if TYPE_CHECKING:
    from inbox.integrations.base import ProviderAdapter
    from inbox.services.integration_connection_service import IntegrationConnectionService

logger = logging.getLogger(__name__)

# Fields owned by the source provider and refreshed on every sync.
# Project and priority belong to the user once the task exists.
PROVIDER_SOURCED_FIELDS = (
    "title",
    "body",
    "status",
    "due_at",
    "tags",
    "is_recurring",
    "completed_at",
)
# A sink provider only reports progress on a task it hosts
SINK_SOURCED_FIELDS = ("status", "due_at", "completed_at")


def get_task(db: Session, task_id: UUID) -> Task | None:
    return db.get(Task, task_id)


def list_tasks(
    db: Session,
    user_id: UUID,
    status: TaskStatus | None = None,
    *,
    limit: int = 100,
) -> list[Task]:
    query = db.query(Task).filter(Task.user_id == user_id)
    if status:
        query = query.filter(Task.status == status.value)
    return query.order_by(Task.created_at.desc()).limit(limit).all()


def find_task_for_item(db: Session, item: ThirdPartyItem) -> Task | None:
    """Return the task sourced from ``item``, else the task ``item`` is the sink of."""
    return (
        db.query(Task)
        .filter(or_(Task.source_item_id == item.id, Task.sink_item_id == item.id))
        .order_by((Task.source_item_id == item.id).desc())
        .first()
    )


def _completed_at(draft: TaskDraft, current: Task | None) -> Any:
    if draft.status != TaskStatus.DONE:
        return None
    if draft.completed_at is not None:
        return draft.completed_at
    if current is not None and current.completed_at is not None:
        return current.completed_at
    return utcnow()


def save_task_from_item(
    db: Session,
    adapter: "ProviderAdapter",
    item: ThirdPartyItem,
    defaults: TaskCreationDefaults,
    user_id: UUID,
) -> UpsertStatus[Task] | None:
    """
    Create or refresh the task derived from ``item``.

    Creation applies ``defaults`` where the provider gave no value. Later
    syncs only refresh provider-sourced fields so user edits survive.
    """
    draft = adapter.build_task(item)
    if draft is None:
        return None

    task = find_task_for_item(db, item)
    if task is None:
        priority = draft.priority or defaults.priority or DEFAULT_TASK_PRIORITY
        task = Task(
            user_id=user_id,
            title=draft.title,
            body=draft.body,
            status=draft.status.value,
            priority=int(priority),
            due_at=draft.due_at or defaults.due_at,
            tags=list(draft.tags),
            project=draft.project or defaults.project or DEFAULT_PROJECT_NAME,
            is_recurring=draft.is_recurring,
            completed_at=_completed_at(draft, None),
            kind=adapter.task_source_kind.value,
            source_item_id=item.id,
            # A task-service item already lives in the sink provider
            sink_item_id=item.id if adapter.provider_kind.is_task_service else None,
        )
        db.add(task)
        db.flush()
        return UpsertStatus.created(task)

    fields = PROVIDER_SOURCED_FIELDS if task.source_item_id == item.id else SINK_SOURCED_FIELDS
    if draft.due_at is None and not adapter.provider_kind.is_task_service:
        # Only to-do providers own due dates; keep the creation default otherwise
        fields = tuple(name for name in fields if name != "due_at")
    values: dict[str, Any] = {
        "title": draft.title,
        "body": draft.body,
        "status": draft.status.value,
        "due_at": draft.due_at,
        "tags": list(draft.tags),
        "is_recurring": draft.is_recurring,
        "completed_at": _completed_at(draft, task),
    }
    changes = apply_changes(task, {name: values[name] for name in fields})
    if not changes:
        return UpsertStatus.untouched(task)
    db.flush()
    return UpsertStatus.updated(task, changes)


# =============================================================================
# User actions
# =============================================================================


async def _propagate_to_provider(
    db: Session,
    task: Task,
    item: ThirdPartyItem,
    previous_status: str,
    changes: dict[str, tuple[Any, Any]],
    *,
    adapter: "ProviderAdapter",
    connection_service: "IntegrationConnectionService",
) -> None:
    token = await connection_service.resolve_access_token(db, task.user_id, adapter.provider_kind)
    if token is None:
        logger.info(
            "No validated %s connection, task %s changes stay local",
            adapter.provider_kind.value,
            task.id,
        )
        return

    if "status" in changes:
        if task.status == TaskStatus.DONE.value:
            await adapter.complete_task(token.access_token, item)
        elif task.status == TaskStatus.DELETED.value:
            await adapter.delete_task(token.access_token, item)
        elif previous_status != TaskStatus.ACTIVE.value:
            await adapter.uncomplete_task(token.access_token, item)

    field_patch = {name: new for name, (_, new) in changes.items() if name != "status"}
    if field_patch and task.status != TaskStatus.DELETED.value:
        await adapter.update_task(token.access_token, item, field_patch)


async def patch_task(
    db: Session,
    task_id: UUID,
    patch: TaskPatch,
    user_id: UUID,
    *,
    adapters: Mapping[str, "ProviderAdapter"] | None = None,
    connection_service: "IntegrationConnectionService | None" = None,
) -> UpdateStatus[Task]:
    """
    Apply a user edit to a task and forward it to the providers hosting it.

    ``adapters`` maps third-party item kinds to their adapter; the source and
    sink items of the task are both updated when their provider can host tasks.
    """
    task = get_task(db, task_id)
    if task is None:
        raise ItemNotFoundError(f"Cannot find task {task_id}")
    if task.user_id != user_id:
        raise ForbiddenError(f"Only the owner of the task {task_id} can patch it")

    values: dict[str, Any] = {}
    for name in patch.model_fields_set:
        value = getattr(patch, name)
        if value is None and name in ("title", "status", "priority", "project"):
            continue
        if name == "status":
            value = value.value
        elif name == "priority":
            value = int(value)
        values[name] = value

    previous_status = task.status
    changes = apply_changes(task, values)
    if not changes:
        return UpdateStatus(False, task)

    if "status" in changes:
        task.completed_at = utcnow() if task.status == TaskStatus.DONE.value else None
    db.flush()
    notification_service.close_task_notifications(db, task)

    if adapters and connection_service:
        items = [task.source_item]
        if task.sink_item_id != task.source_item_id:
            items.append(task.sink_item)
        for item in items:
            if item is None:
                continue
            adapter = adapters.get(item.kind)
            if adapter is None or not adapter.is_task_source:
                continue
            await _propagate_to_provider(
                db,
                task,
                item,
                previous_status,
                changes,
                adapter=adapter,
                connection_service=connection_service,
            )

    return UpdateStatus(True, task)
