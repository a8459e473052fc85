"""Tests for the item -> task -> notification cascade and the reconciler."""

import pytest

from inbox.core.errors import RecoverableError
from inbox.db.enums import IntegrationProviderKind, NotificationStatus, TaskStatus
from inbox.db.models import Notification, Task, ThirdPartyItem
from inbox.services.third_party_item_service import get_stale_items, sync_items


def _notification_for(db, source_id: str) -> Notification:
    return (
        db.query(Notification)
        .join(ThirdPartyItem, Notification.source_item_id == ThirdPartyItem.id)
        .filter(ThirdPartyItem.source_id == source_id)
        .one()
    )


def _task_for(db, source_id: str) -> Task:
    return (
        db.query(Task)
        .join(ThirdPartyItem, Task.source_item_id == ThirdPartyItem.id)
        .filter(ThirdPartyItem.source_id == source_id)
        .one()
    )


@pytest.fixture
def github_connection(db, test_user, make_connection, broker):
    connection = make_connection(test_user)
    broker.register(connection)
    return connection


@pytest.fixture
def ticktick_connection(db, test_user, make_connection, broker):
    connection = make_connection(test_user, IntegrationProviderKind.TICKTICK)
    broker.register(connection)
    return connection


# =============================================================================
# Idempotence and short-circuit
# =============================================================================

@pytest.mark.asyncio
async def test_second_identical_sync_is_a_no_op(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [{"id": "n1", "title": "Review PR", "unread": True}]

    first = await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)
    second = await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert len(first) == 1
    assert first[0].item.source_id == "n1"
    assert first[0].task is None
    assert first[0].notification.status == NotificationStatus.UNREAD.value
    assert second == []
    assert notification_adapter.build_notification_calls == 1
    assert db.query(ThirdPartyItem).count() == 1
    assert db.query(Notification).count() == 1


@pytest.mark.asyncio
async def test_item_change_without_notification_change_stops_at_item(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [{"id": "n1", "title": "Review PR", "unread": True}]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    notification_adapter.records = [
        {"id": "n1", "title": "Review PR", "unread": True, "updated_at": "2026-10-19T10:00:00Z"}
    ]
    results = await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert len(results) == 1
    assert results[0].item.data["updated_at"] == "2026-10-19T10:00:00Z"
    assert results[0].notification is None


@pytest.mark.asyncio
async def test_task_source_idempotence(db, test_user, ticktick_connection, connection_service, task_adapter):
    task_adapter.records = [{"id": "A", "title": "Buy milk"}]

    first = await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)
    second = await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)

    assert len(first) == 1
    assert first[0].task.title == "Buy milk"
    assert first[0].notification.task_id == first[0].task.id
    assert second == []
    assert task_adapter.build_task_calls == 1


# =============================================================================
# Failures
# =============================================================================

@pytest.mark.asyncio
async def test_one_bad_record_does_not_block_the_batch(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [
        {"id": "n1", "title": "First", "unread": True},
        {"id": "n2", "title": "boom", "unread": True},
        {"id": "n3", "title": "Third", "unread": True},
    ]

    results = await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert [result.item.source_id for result in results] == ["n1", "n3"]
    assert {item.source_id for item in db.query(ThirdPartyItem).all()} == {"n1", "n3"}


@pytest.mark.asyncio
async def test_fetch_failure_aborts_the_pass(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [{"id": "n1", "title": "First", "unread": True}]
    notification_adapter.fetch_error = RecoverableError("GitHub is down")

    with pytest.raises(RecoverableError):
        await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert db.query(ThirdPartyItem).count() == 0


@pytest.mark.asyncio
async def test_sync_without_validated_connection_does_nothing(db, test_user, connection_service, notification_adapter):
    notification_adapter.records = [{"id": "n1", "title": "First", "unread": True}]

    results = await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert results == []
    assert notification_adapter.fetch_calls == 0


# =============================================================================
# Staleness
# =============================================================================

@pytest.mark.asyncio
async def test_vanished_notifications_are_deleted_for_full_syncs(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [
        {"id": "n1", "title": "First", "unread": True},
        {"id": "n2", "title": "Second", "unread": True},
    ]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    notification_adapter.records = notification_adapter.records[:1]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert _notification_for(db, "n1").status == NotificationStatus.UNREAD.value
    assert _notification_for(db, "n2").status == NotificationStatus.DELETED.value


@pytest.mark.asyncio
async def test_incremental_syncs_keep_unseen_notifications(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.incremental = True
    notification_adapter.records = [
        {"id": "n1", "title": "First", "unread": True},
        {"id": "n2", "title": "Second", "unread": True},
    ]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    notification_adapter.records = [{"id": "n3", "title": "Third", "unread": True}]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert _notification_for(db, "n2").status == NotificationStatus.UNREAD.value
    assert db.query(Notification).count() == 3


@pytest.mark.asyncio
async def test_ticktick_sweep_closes_vanished_task(db, test_user, ticktick_connection, connection_service, task_adapter):
    task_adapter.records = [{"id": "A", "title": "Task A"}, {"id": "B", "title": "Task B"}]
    await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)
    task_a_updated_at = _task_for(db, "A").updated_at

    task_adapter.records = [{"id": "A", "title": "Task A"}]
    results = await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)

    assert [result.item.source_id for result in results] == ["B"]
    assert results[0].item.data["done"] is True
    assert _task_for(db, "B").status == TaskStatus.DONE.value
    assert _task_for(db, "B").completed_at is not None
    assert _notification_for(db, "B").status == NotificationStatus.DELETED.value

    assert _task_for(db, "A").status == TaskStatus.ACTIVE.value
    assert _task_for(db, "A").updated_at == task_a_updated_at
    assert _notification_for(db, "A").status == NotificationStatus.UNREAD.value

    assert await sync_items(db, task_adapter, test_user.id, connection_service=connection_service) == []


@pytest.mark.asyncio
async def test_sweep_does_not_touch_other_providers(
    db,
    test_user,
    github_connection,
    ticktick_connection,
    connection_service,
    notification_adapter,
    task_adapter,
):
    notification_adapter.records = [{"id": "n1", "title": "Review PR", "unread": True}]
    await sync_items(db, notification_adapter, test_user.id, connection_service=connection_service)
    task_adapter.records = [{"id": "A", "title": "Task A"}]
    await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)

    task_adapter.records = []
    await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)

    assert _task_for(db, "A").status == TaskStatus.DONE.value
    assert _notification_for(db, "n1").status == NotificationStatus.UNREAD.value


@pytest.mark.asyncio
async def test_get_stale_items_ignores_finished_tasks(db, test_user, ticktick_connection, connection_service, task_adapter):
    task_adapter.records = [{"id": "A", "title": "Task A"}, {"id": "B", "title": "Task B", "done": True}]
    await sync_items(db, task_adapter, test_user.id, connection_service=connection_service)

    stale = get_stale_items(
        db,
        user_id=test_user.id,
        item_kind=task_adapter.item_kind,
        active_source_ids=[],
    )

    assert [item.source_id for item in stale] == ["A"]
