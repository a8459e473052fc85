"""Tests for sync job handlers: transaction ownership and payload validation."""

from types import SimpleNamespace
import uuid

import pytest

from inbox.core.errors import RecoverableError
from inbox.db.enums import IntegrationProviderKind, JobType
from inbox.db.models import IntegrationConnection, Notification, ThirdPartyItem
from inbox.jobs.handlers import sync as sync_handlers
from inbox.jobs.handlers.sync import run_sync
from inbox.jobs.registry import resolve_job_handler


@pytest.fixture
def github_connection(test_user, make_connection, broker):
    connection = make_connection(test_user)
    broker.register(connection)
    return connection


@pytest.mark.asyncio
async def test_recoverable_error_keeps_partial_progress(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [
        {"id": "n1", "title": "First", "unread": True},
        {"id": "n2", "title": "Second", "unread": True},
    ]
    notification_adapter.convert_error_on = {"n2": RecoverableError("rate limited")}

    with pytest.raises(RecoverableError):
        await run_sync(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert [item.source_id for item in db.query(ThirdPartyItem).all()] == ["n1"]
    assert db.query(Notification).count() == 1
    connection = db.get(IntegrationConnection, github_connection.id)
    assert connection.last_sync_failure_message == "rate limited"
    assert connection.last_sync_started_at is not None


@pytest.mark.asyncio
async def test_unexpected_error_rolls_back_the_pass(db, test_user, github_connection, connection_service, notification_adapter):
    notification_adapter.records = [
        {"id": "n1", "title": "First", "unread": True},
        {"id": "n2", "title": "Second", "unread": True},
    ]
    notification_adapter.convert_error_on = {"n2": KeyError("subject")}

    with pytest.raises(KeyError):
        await run_sync(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert db.query(ThirdPartyItem).count() == 0
    assert db.query(Notification).count() == 0
    connection = db.get(IntegrationConnection, github_connection.id)
    assert connection.last_sync_failure_message.startswith("Unexpected error while syncing: ")
    assert connection.last_sync_started_at is not None


@pytest.mark.asyncio
async def test_successful_sync_clears_previous_failure(db, test_user, github_connection, connection_service, notification_adapter):
    github_connection.last_sync_failure_message = "old failure"
    db.commit()
    notification_adapter.records = [{"id": "n1", "title": "First", "unread": True}]

    results = await run_sync(db, notification_adapter, test_user.id, connection_service=connection_service)

    assert len(results) == 1
    connection = db.get(IntegrationConnection, github_connection.id)
    assert connection.last_sync_failure_message is None


@pytest.mark.asyncio
async def test_process_sync_notifications_job(db, test_user, github_connection, connection_service, notification_adapter, monkeypatch):
    notification_adapter.records = [{"id": "n1", "title": "First", "unread": True}]
    resolved = []

    def fake_resolve(provider_kind):
        resolved.append(provider_kind)
        return notification_adapter

    monkeypatch.setattr(sync_handlers, "resolve_adapter", fake_resolve)
    monkeypatch.setattr(sync_handlers, "build_integration_connection_service", lambda: connection_service)
    job = SimpleNamespace(
        id=uuid.uuid4(),
        payload={"user_id": str(test_user.id), "provider_kind": "github"},
    )

    await sync_handlers.process_sync_notifications(db, job)

    assert resolved == [IntegrationProviderKind.GITHUB]
    assert db.query(Notification).count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"user_id": "not-a-uuid", "provider_kind": "github"},
        {"user_id": str(uuid.uuid4())},
        {"user_id": str(uuid.uuid4()), "provider_kind": "myspace"},
    ],
)
async def test_sync_job_payload_validation(db, payload):
    job = SimpleNamespace(id=uuid.uuid4(), payload=payload)

    with pytest.raises(ValueError):
        await sync_handlers.process_sync_notifications(db, job)


@pytest.mark.asyncio
async def test_sync_tasks_job_requires_task_provider(db, test_user, notification_adapter, monkeypatch):
    monkeypatch.setattr(sync_handlers, "resolve_adapter", lambda provider_kind: notification_adapter)
    job = SimpleNamespace(
        id=uuid.uuid4(),
        payload={"user_id": str(test_user.id), "provider_kind": "github"},
    )

    with pytest.raises(ValueError, match="not a task provider"):
        await sync_handlers.process_sync_tasks(db, job)


def test_job_registry_resolves_known_handlers():
    assert resolve_job_handler(JobType.SYNC_NOTIFICATIONS.value) is sync_handlers.process_sync_notifications
    assert resolve_job_handler(JobType.SYNC_TASKS.value) is sync_handlers.process_sync_tasks


def test_job_registry_rejects_unknown_types():
    with pytest.raises(ValueError, match="Unknown job type"):
        resolve_job_handler("send_digest")
