"""Third-party item reconciliation: upsert, cascade, stale sweep and sink items.

One sync pass for a (user, provider):

1. resolve the access token through the connection service
2. fetch the provider's current records
3. for each record, upsert the item and cascade item -> task -> notification,
   stopping as soon as a layer reports no change
4. for non-incremental providers, sweep items that vanished upstream

Each record's cascade runs in a SAVEPOINT so one bad record cannot block the
rest of the batch. A failing fetch aborts the whole pass.
"""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import exists, or_
from sqlalchemy.orm import Session

from inbox.core.errors import ItemNotFoundError
from inbox.core.structured_logging import build_log_context
from inbox.db.enums import (
    DEFAULT_PROJECT_NAME,
    DEFAULT_TASK_PRIORITY,
    TaskPriority,
    TaskStatus,
    ThirdPartyItemKind,
)
from inbox.db.models import IntegrationConnection, Task, ThirdPartyItem
from inbox.db.types import utcnow
from inbox.integrations.base import ProviderAdapter
from inbox.schemas.task import TaskCreation, TaskCreationDefaults
from inbox.schemas.third_party import ThirdPartyItemCreate
from inbox.services import notification_service, task_service
from inbox.services.integration_connection_service import IntegrationConnectionService
from inbox.services.sink_project_cache import ProjectCache
from inbox.services.upsert import ItemCreationResult, UpsertStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Item layer
# =============================================================================


def get_third_party_item(db: Session, item_id: UUID) -> ThirdPartyItem | None:
    return db.get(ThirdPartyItem, item_id)


def save_third_party_item(db: Session, item: ThirdPartyItemCreate) -> UpsertStatus[ThirdPartyItem]:
    """Upsert an item by (source_id, kind, user, connection); untouched when data is equal."""
    existing = (
        db.query(ThirdPartyItem)
        .filter(
            ThirdPartyItem.source_id == item.source_id,
            ThirdPartyItem.kind == item.kind.value,
            ThirdPartyItem.user_id == item.user_id,
            ThirdPartyItem.integration_connection_id == item.integration_connection_id,
        )
        .one_or_none()
    )

    if existing is None:
        row = ThirdPartyItem(
            source_id=item.source_id,
            kind=item.kind.value,
            data=item.data,
            user_id=item.user_id,
            integration_connection_id=item.integration_connection_id,
            source_item_id=item.source_item_id,
        )
        db.add(row)
        db.flush()
        return UpsertStatus.created(row)

    if existing.data == item.data:
        return UpsertStatus.untouched(existing)

    changes = {"data": (existing.data, item.data)}
    existing.data = item.data
    existing.updated_at = utcnow()
    if item.source_item_id is not None and existing.source_item_id != item.source_item_id:
        changes["source_item_id"] = (existing.source_item_id, item.source_item_id)
        existing.source_item_id = item.source_item_id
    db.flush()
    return UpsertStatus.updated(existing, changes)


def get_stale_items(
    db: Session,
    *,
    user_id: UUID,
    item_kind: ThirdPartyItemKind,
    active_source_ids: Iterable[str],
) -> list[ThirdPartyItem]:
    """
    Items of ``item_kind`` missing from the latest fetch that still back an active task.

    Tasks are matched through either their source or their sink item, so a
    task completed in a sink provider is closed too.
    """
    backs_active_task = exists().where(
        Task.status == TaskStatus.ACTIVE.value,
        Task.user_id == user_id,
        or_(Task.source_item_id == ThirdPartyItem.id, Task.sink_item_id == ThirdPartyItem.id),
    )
    return (
        db.query(ThirdPartyItem)
        .filter(
            ThirdPartyItem.user_id == user_id,
            ThirdPartyItem.kind == item_kind.value,
            ThirdPartyItem.source_id.not_in(list(active_source_ids)),
            backs_active_task,
        )
        .order_by(ThirdPartyItem.created_at)
        .all()
    )


# =============================================================================
# Cascade
# =============================================================================


def sync_item(
    db: Session,
    adapter: ProviderAdapter,
    item_create: ThirdPartyItemCreate,
    *,
    connection: IntegrationConnection,
    task_creation_defaults: TaskCreationDefaults,
    user_id: UUID,
) -> ItemCreationResult | None:
    """
    Upsert one item and cascade the change to its task and notification.

    Returns None when the item is unchanged; otherwise a result naming only
    the layers that actually changed.
    """
    item_status = save_third_party_item(db, item_create)
    item = item_status.modified_value()
    if item is None:
        return None
    result = ItemCreationResult(item=item)

    if adapter.is_task_source:
        task_status = task_service.save_task_from_item(
            db, adapter, item, task_creation_defaults, user_id
        )
        task = task_status.modified_value() if task_status else None
        if task is None:
            return result
        result.task = task

        if task.source_item_id != item.id:
            # Item is the sink copy of a task sourced elsewhere
            notification_service.close_task_notifications(db, task)
            return result

        # Always incremental here: a non-incremental upsert would mark every
        # other notification of this kind as deleted.
        notification_status = notification_service.save_notification_from_task(
            db, adapter, task, item, connection, is_incremental=True
        )
    else:
        notification_status = notification_service.save_notification_from_item(
            db, adapter, item, connection, is_incremental=True
        )

    if notification_status is not None:
        result.notification = notification_status.modified_value()
    return result


def _sync_item_isolated(
    db: Session,
    adapter: ProviderAdapter,
    item_create: ThirdPartyItemCreate,
    *,
    connection: IntegrationConnection,
    task_creation_defaults: TaskCreationDefaults,
    user_id: UUID,
) -> ItemCreationResult | None:
    savepoint = db.begin_nested()
    try:
        result = sync_item(
            db,
            adapter,
            item_create,
            connection=connection,
            task_creation_defaults=task_creation_defaults,
            user_id=user_id,
        )
    except Exception:
        savepoint.rollback()
        logger.exception(
            "Failed to sync %s item %s, skipping",
            item_create.kind.value,
            item_create.source_id,
            extra=build_log_context(
                user_id=user_id,
                provider_kind=adapter.provider_kind.value,
                connection_id=connection.id,
            ),
        )
        return None
    savepoint.commit()
    return result


async def sync_items(
    db: Session,
    adapter: ProviderAdapter,
    user_id: UUID,
    *,
    connection_service: IntegrationConnectionService,
) -> list[ItemCreationResult]:
    """Run one full sync pass of ``adapter`` for ``user_id``."""
    log_context = build_log_context(user_id=user_id, provider_kind=adapter.provider_kind.value)
    token = await connection_service.resolve_access_token(db, user_id, adapter.provider_kind)
    if token is None:
        logger.info(
            "No validated %s connection for user %s, nothing to sync",
            adapter.provider_kind.value,
            user_id,
            extra=log_context,
        )
        return []

    connection = token.connection
    defaults = adapter.task_creation_defaults(connection)
    records = await adapter.fetch_items(token.access_token, connection, user_id)

    results: list[ItemCreationResult] = []
    active_source_ids: list[str] = []
    for record in records:
        item_create = adapter.into_third_party_item(
            record, user_id=user_id, integration_connection_id=connection.id
        )
        active_source_ids.append(item_create.source_id)
        result = _sync_item_isolated(
            db,
            adapter,
            item_create,
            connection=connection,
            task_creation_defaults=defaults,
            user_id=user_id,
        )
        if result is not None:
            results.append(result)

    if not adapter.is_sync_incremental():
        results.extend(
            _sweep_stale_items(
                db,
                adapter,
                connection=connection,
                task_creation_defaults=defaults,
                user_id=user_id,
                active_source_ids=active_source_ids,
            )
        )

    logger.info(
        "Synced %s %s items for user %s (%s changed)",
        len(records),
        adapter.item_kind.value,
        user_id,
        len(results),
        extra=log_context,
    )
    return results


def _sweep_stale_items(
    db: Session,
    adapter: ProviderAdapter,
    *,
    connection: IntegrationConnection,
    task_creation_defaults: TaskCreationDefaults,
    user_id: UUID,
    active_source_ids: list[str],
) -> list[ItemCreationResult]:
    if not adapter.is_task_source:
        stale = notification_service.delete_stale_notifications(
            db,
            user_id=user_id,
            kind=adapter.provider_kind.notification_source_kind,
            item_kind=adapter.item_kind,
            integration_connection_id=connection.id,
            active_source_ids=active_source_ids,
        )
        if stale:
            logger.info("Deleted %s stale %s notifications", len(stale), adapter.item_kind.value)
        return []

    results: list[ItemCreationResult] = []
    for stale_item in get_stale_items(
        db,
        user_id=user_id,
        item_kind=adapter.item_kind,
        active_source_ids=active_source_ids,
    ):
        done_item = ThirdPartyItemCreate(
            source_id=stale_item.source_id,
            kind=adapter.item_kind,
            data=adapter.mark_as_done(stale_item.data),
            user_id=stale_item.user_id,
            integration_connection_id=stale_item.integration_connection_id,
            source_item_id=stale_item.source_item_id,
        )
        result = _sync_item_isolated(
            db,
            adapter,
            done_item,
            connection=connection,
            task_creation_defaults=task_creation_defaults,
            user_id=user_id,
        )
        if result is not None:
            results.append(result)
    return results


# =============================================================================
# Sink items
# =============================================================================


async def create_sink_item_from_task(
    db: Session,
    task: Task,
    *,
    sink_adapter: ProviderAdapter,
    connection_service: IntegrationConnectionService,
    project_cache: ProjectCache,
    overwrite: bool = False,
) -> ThirdPartyItem:
    """
    Materialize ``task`` in a task-capable sink provider and link it back.

    A task has at most one sink item: when it already has one and
    ``overwrite`` is false, it is returned without calling the provider.
    A task sourced from the sink provider is its own sink item.
    """
    source_item = task.source_item
    if source_item is not None and source_item.kind == sink_adapter.item_kind.value:
        if task.sink_item_id != source_item.id:
            task.sink_item = source_item
            db.flush()
        return source_item

    if task.sink_item is not None and not overwrite:
        return task.sink_item

    provider_kind = sink_adapter.provider_kind
    token = await connection_service.resolve_access_token(db, task.user_id, provider_kind)
    if token is None:
        raise ItemNotFoundError(
            f"Cannot create a sink item for task {task.id} without a validated "
            f"{provider_kind.value} integration connection"
        )

    defaults = sink_adapter.task_creation_defaults(token.connection)
    project_name = task.project or defaults.project or DEFAULT_PROJECT_NAME
    project = await project_cache.get_or_create(
        provider_kind=provider_kind.value,
        user_id=task.user_id,
        name=project_name,
        list_projects=lambda: sink_adapter.list_projects(token.access_token),
        create_project=lambda name: sink_adapter.create_project(token.access_token, name),
    )

    try:
        priority = TaskPriority(task.priority)
    except ValueError:
        priority = DEFAULT_TASK_PRIORITY
    record = await sink_adapter.create_task(
        token.access_token,
        TaskCreation(
            title=task.title,
            body=task.body,
            project=project,
            due_at=task.due_at,
            priority=priority,
        ),
    )
    item_create = sink_adapter.into_third_party_item(
        record, user_id=task.user_id, integration_connection_id=token.connection.id
    ).model_copy(update={"source_item_id": task.source_item_id})
    item = save_third_party_item(db, item_create).value()

    task.sink_item = item
    db.flush()
    logger.info(
        "Created %s sink item %s for task %s",
        provider_kind.value,
        item.id,
        task.id,
        extra=build_log_context(user_id=task.user_id, provider_kind=provider_kind.value),
    )
    return item

