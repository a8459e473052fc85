"""Notification service: derive notifications from items and tasks, list and patch them."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inbox.core.errors import ForbiddenError, ItemNotFoundError
from inbox.db.enums import NotificationSourceKind, NotificationStatus, ThirdPartyItemKind
from inbox.db.models import IntegrationConnection, Notification, Task, ThirdPartyItem
from inbox.db.types import utcnow
from inbox.schemas.notification import NotificationDetails, NotificationDraft, NotificationPatch
from inbox.services.upsert import UpdateStatus, UpsertStatus, apply_changes

if TYPE_CHECKING:
    from inbox.integrations.base import ProviderAdapter

logger = logging.getLogger(__name__)

# Statuses chosen by the user that a sync must not resurrect
_CLOSED_STATUSES = (NotificationStatus.DELETED.value, NotificationStatus.UNSUBSCRIBED.value)


def get_notification(db: Session, notification_id: UUID) -> Notification | None:
    return db.get(Notification, notification_id)


def list_notifications(
    db: Session,
    user_id: UUID,
    statuses: Iterable[NotificationStatus] | None = None,
    *,
    limit: int = 100,
) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if statuses:
        query = query.filter(Notification.status.in_([status.value for status in statuses]))
    return query.order_by(Notification.updated_at.desc()).limit(limit).all()


# =============================================================================
# Sync
# =============================================================================


def _save_notification(
    db: Session,
    draft: NotificationDraft,
    *,
    item: ThirdPartyItem,
    task: Task | None,
    kind: NotificationSourceKind,
    is_incremental: bool,
) -> UpsertStatus[Notification]:
    status = draft.status
    existing = (
        db.query(Notification).filter(Notification.source_item_id == item.id).one_or_none()
    )

    if existing is None:
        notification = Notification(
            user_id=item.user_id,
            title=draft.title,
            status=status.value,
            kind=kind.value,
            source_item_id=item.id,
            task_id=task.id if task else None,
        )
        db.add(notification)
        db.flush()
        result = UpsertStatus.created(notification)
    else:
        if (
            existing.status == NotificationStatus.UNSUBSCRIBED.value
            and status != NotificationStatus.DELETED
        ):
            status = NotificationStatus.UNSUBSCRIBED
        changes = apply_changes(
            existing,
            {
                "title": draft.title,
                "status": status.value,
                "kind": kind.value,
                "task_id": task.id if task else None,
            },
        )
        if changes:
            db.flush()
            result = UpsertStatus.updated(existing, changes)
        else:
            result = UpsertStatus.untouched(existing)

    if not is_incremental:
        delete_stale_notifications(
            db,
            user_id=item.user_id,
            kind=kind,
            item_kind=item.item_kind,
            integration_connection_id=item.integration_connection_id,
            active_source_ids=[item.source_id],
        )
    return result


def save_notification_from_item(
    db: Session,
    adapter: "ProviderAdapter",
    item: ThirdPartyItem,
    connection: IntegrationConnection,
    *,
    is_incremental: bool = True,
) -> UpsertStatus[Notification] | None:
    """Derive a notification directly from an item (providers with no task concept)."""
    draft = adapter.build_notification(item, None, connection)
    if draft is None:
        return None
    return _save_notification(
        db,
        draft,
        item=item,
        task=None,
        kind=adapter.provider_kind.notification_source_kind,
        is_incremental=is_incremental,
    )


def save_notification_from_task(
    db: Session,
    adapter: "ProviderAdapter",
    task: Task,
    item: ThirdPartyItem,
    connection: IntegrationConnection,
    *,
    is_incremental: bool = True,
) -> UpsertStatus[Notification] | None:
    """
    Derive a notification from a task.

    A task that is no longer active always maps to a deleted notification.
    When the adapter no longer wants a notification for the task, an existing
    one is marked deleted.
    """
    draft = adapter.build_notification(item, task, connection)
    if draft is None:
        existing = (
            db.query(Notification).filter(Notification.source_item_id == item.id).one_or_none()
        )
        if existing is None or existing.status in _CLOSED_STATUSES:
            return None
        draft = NotificationDraft(title=existing.title, status=NotificationStatus.DELETED)
    elif not task.is_active:
        draft = draft.model_copy(update={"status": NotificationStatus.DELETED})

    return _save_notification(
        db,
        draft,
        item=item,
        task=task,
        kind=adapter.provider_kind.notification_source_kind,
        is_incremental=is_incremental,
    )


def close_task_notifications(db: Session, task: Task) -> list[Notification]:
    """Mark the notifications of a finished task as deleted."""
    if task.is_active:
        return []
    notifications = (
        db.query(Notification)
        .filter(
            Notification.task_id == task.id,
            Notification.status.not_in(_CLOSED_STATUSES),
        )
        .all()
    )
    for notification in notifications:
        notification.status = NotificationStatus.DELETED.value
    if notifications:
        db.flush()
    return notifications


def delete_stale_notifications(
    db: Session,
    *,
    user_id: UUID,
    kind: NotificationSourceKind,
    item_kind: ThirdPartyItemKind,
    integration_connection_id: UUID,
    active_source_ids: Iterable[str],
) -> list[Notification]:
    """Mark as deleted the notifications whose item is gone from the provider."""
    stale_item_ids = select(ThirdPartyItem.id).where(
        ThirdPartyItem.user_id == user_id,
        ThirdPartyItem.kind == item_kind.value,
        ThirdPartyItem.integration_connection_id == integration_connection_id,
        ThirdPartyItem.source_id.not_in(list(active_source_ids)),
    )
    notifications = (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.kind == kind.value,
            Notification.source_item_id.in_(stale_item_ids),
            Notification.status.not_in(_CLOSED_STATUSES),
        )
        .all()
    )
    for notification in notifications:
        notification.status = NotificationStatus.DELETED.value
    if notifications:
        db.flush()
    return notifications


def delete_notifications_for_connection(
    db: Session,
    *,
    user_id: UUID,
    kind: NotificationSourceKind,
    integration_connection_id: UUID,
) -> int:
    """Hard-delete a connection's notifications of ``kind`` (config epoch reset)."""
    connection_item_ids = select(ThirdPartyItem.id).where(
        ThirdPartyItem.integration_connection_id == integration_connection_id
    )
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.kind == kind.value,
            Notification.source_item_id.in_(connection_item_ids),
        )
        .delete(synchronize_session="fetch")
    )


# =============================================================================
# User actions
# =============================================================================


def patch_notification(
    db: Session,
    notification_id: UUID,
    patch: NotificationPatch,
    user_id: UUID,
) -> UpdateStatus[Notification]:
    notification = get_notification(db, notification_id)
    if notification is None:
        raise ItemNotFoundError(f"Cannot find notification {notification_id}")
    if notification.user_id != user_id:
        raise ForbiddenError(f"Only the owner of the notification {notification_id} can patch it")

    values: dict[str, object] = {}
    if "status" in patch.model_fields_set and patch.status is not None:
        values["status"] = patch.status.value
    if "snoozed_until" in patch.model_fields_set:
        values["snoozed_until"] = patch.snoozed_until

    changes = apply_changes(notification, values)
    if not changes:
        return UpdateStatus(False, notification)
    if values.get("status") == NotificationStatus.READ.value:
        notification.last_read_at = utcnow()
    db.flush()
    return UpdateStatus(True, notification)


async def fetch_notification_details(
    adapter: "ProviderAdapter", access_token: str, notification: Notification
) -> NotificationDetails | None:
    return await adapter.fetch_notification_details(access_token, notification.source_item)
