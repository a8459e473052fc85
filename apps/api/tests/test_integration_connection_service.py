"""Tests for the integration connection lifecycle and sync bookkeeping."""

import pytest

from inbox.core.errors import ForbiddenError, InvalidInputError, RecoverableError
from inbox.db.enums import (
    IntegrationConnectionStatus,
    IntegrationProviderKind,
    NotificationStatus,
    ThirdPartyItemKind,
)
from inbox.db.models import Notification, ThirdPartyItem
from inbox.schemas.integration_connection import (
    GithubConfig,
    GoogleMailConfig,
    GoogleMailLabel,
    TickTickConfig,
)
from inbox.services.integration_connection_service import UNKNOWN_BROKER_CONNECTION_MESSAGE


def _add_notification(db, connection, kind: ThirdPartyItemKind, source_id: str) -> Notification:
    item = ThirdPartyItem(
        source_id=source_id,
        kind=kind.value,
        data={"id": source_id},
        user_id=connection.user_id,
        integration_connection_id=connection.id,
    )
    db.add(item)
    db.flush()
    notification = Notification(
        user_id=connection.user_id,
        title=f"Notification {source_id}",
        status=NotificationStatus.UNREAD.value,
        kind=connection.provider_kind,
        source_item_id=item.id,
    )
    db.add(notification)
    db.flush()
    return notification


def test_create_connection_uses_provider_default_config(db, test_user, connection_service):
    connection = connection_service.create_connection(
        db, test_user.id, IntegrationProviderKind.TICKTICK
    )

    assert connection.status == IntegrationConnectionStatus.CREATED.value
    assert connection.config == TickTickConfig().model_dump(mode="json")
    assert connection_service.list_connections(db, test_user.id) == [connection]


# =============================================================================
# State machine
# =============================================================================

@pytest.mark.asyncio
async def test_verify_unknown_then_known_connection(db, test_user, make_connection, broker, connection_service):
    connection = make_connection(test_user, status=IntegrationConnectionStatus.CREATED)

    status = await connection_service.verify(db, connection.id, test_user.id)
    assert status.updated is True
    assert connection.status == IntegrationConnectionStatus.FAILING.value
    assert connection.failure_message == UNKNOWN_BROKER_CONNECTION_MESSAGE

    broker.register(
        connection,
        scope="notifications,repo",
        metadata={"provider_user_id": 42, "context": {"login": "octocat"}},
    )
    status = await connection_service.verify(db, connection.id, test_user.id)

    assert status.updated is True
    assert connection.status == IntegrationConnectionStatus.VALIDATED.value
    assert connection.failure_message is None
    assert connection.registered_oauth_scopes == ["notifications", "repo"]
    assert connection.provider_user_id == "42"
    assert connection.context == {"login": "octocat"}


@pytest.mark.asyncio
async def test_verify_twice_reports_no_change(db, test_user, make_connection, broker, connection_service):
    connection = make_connection(test_user, status=IntegrationConnectionStatus.CREATED)
    broker.register(connection)

    first = await connection_service.verify(db, connection.id, test_user.id)
    second = await connection_service.verify(db, connection.id, test_user.id)

    assert first.updated is True
    assert second.updated is False
    assert second.result is connection


@pytest.mark.asyncio
async def test_verify_missing_connection_is_not_found(db, test_user, connection_service):
    import uuid

    status = await connection_service.verify(db, uuid.uuid4(), test_user.id)

    assert status.updated is False
    assert status.result is None


@pytest.mark.asyncio
async def test_verify_other_users_connection_is_forbidden(db, test_user, make_user, make_connection, connection_service):
    connection = make_connection(test_user)
    intruder = make_user()

    with pytest.raises(ForbiddenError) as exc_info:
        await connection_service.verify(db, connection.id, intruder.id)

    assert str(connection.id) in str(exc_info.value)


@pytest.mark.asyncio
async def test_resolve_access_token(db, test_user, make_connection, broker, connection_service):
    assert (
        await connection_service.resolve_access_token(db, test_user.id, IntegrationProviderKind.GITHUB)
        is None
    )

    connection = make_connection(test_user)
    broker.register(connection, access_token="gh-token", metadata={"context": {"org": "acme"}})

    token = await connection_service.resolve_access_token(
        db, test_user.id, IntegrationProviderKind.GITHUB
    )

    assert token.access_token == "gh-token"
    assert token.connection is connection
    assert connection.context == {"org": "acme"}
    assert broker.get_calls == [(connection.connection_id, "github")]


@pytest.mark.asyncio
async def test_resolve_access_token_unknown_to_broker_marks_failing(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user)

    with pytest.raises(RecoverableError) as exc_info:
        await connection_service.resolve_access_token(db, test_user.id, IntegrationProviderKind.GITHUB)

    assert str(connection.connection_id) in str(exc_info.value)
    assert connection.status == IntegrationConnectionStatus.FAILING.value
    assert connection.failure_message == UNKNOWN_BROKER_CONNECTION_MESSAGE


@pytest.mark.asyncio
async def test_disconnect_resets_connection(db, test_user, make_connection, broker, connection_service):
    connection = make_connection(test_user)
    broker.register(connection)
    connection.provider_user_id = "42"

    status = await connection_service.disconnect(db, connection.id, test_user.id)

    assert status.updated is True
    assert connection.status == IntegrationConnectionStatus.CREATED.value
    assert connection.provider_user_id is None
    assert broker.deleted == [(connection.connection_id, "github")]


@pytest.mark.asyncio
async def test_disconnect_created_connection_clears_provider_user(
    db, test_user, make_connection, broker, connection_service
):
    connection = make_connection(test_user, status=IntegrationConnectionStatus.CREATED)
    broker.register(connection)
    connection.provider_user_id = "42"
    db.flush()

    status = await connection_service.disconnect(db, connection.id, test_user.id)

    assert status.updated is True
    db.expire(connection)
    assert connection.status == IntegrationConnectionStatus.CREATED.value
    assert connection.provider_user_id is None


@pytest.mark.asyncio
async def test_sync_oauth_scopes_refreshes_changed_scopes(db, test_user, make_connection, broker, connection_service):
    connection = make_connection(test_user)
    connection.registered_oauth_scopes = ["repo"]
    broker.register(connection, scope="repo notifications")

    refreshed = await connection_service.sync_oauth_scopes(db, test_user.id)

    assert refreshed == [connection]
    assert connection.registered_oauth_scopes == ["repo", "notifications"]
    assert await connection_service.sync_oauth_scopes(db, test_user.id) == []


# =============================================================================
# Sync bookkeeping
# =============================================================================

def test_sync_bookkeeping_never_changes_status(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user)
    kind = IntegrationProviderKind.GITHUB

    connection_service.start_sync(db, test_user.id, kind)
    assert connection.last_sync_started_at is not None

    status = connection_service.error_sync(db, test_user.id, kind, "rate limited")
    assert status.updated is True
    assert connection.last_sync_failure_message == "rate limited"
    assert connection.status == IntegrationConnectionStatus.VALIDATED.value

    connection_service.reset_error_sync(db, test_user.id, kind)
    assert connection.last_sync_failure_message is None
    assert connection_service.reset_error_sync(db, test_user.id, kind).updated is False


def test_sync_bookkeeping_skips_created_connections(db, test_user, make_connection, connection_service):
    make_connection(test_user, status=IntegrationConnectionStatus.CREATED)

    status = connection_service.start_sync(db, test_user.id, IntegrationProviderKind.GITHUB)

    assert status.result is None


# =============================================================================
# Config
# =============================================================================

def test_update_config_any_change_purges_notifications(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user)
    connection.context = {"cached": True}
    _add_notification(db, connection, ThirdPartyItemKind.GITHUB_NOTIFICATION, "n1")

    status = connection_service.update_config(
        db, connection.id, GithubConfig(sync_notifications_enabled=False), test_user.id
    )

    assert status.updated is True
    assert connection.config["sync_notifications_enabled"] is False
    assert connection.context is None
    assert db.query(Notification).count() == 0


def test_update_config_only_resync_fields_purge(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user, IntegrationProviderKind.GOOGLE_MAIL)
    _add_notification(db, connection, ThirdPartyItemKind.GOOGLE_MAIL_THREAD, "t1")

    connection_service.update_config(
        db, connection.id, GoogleMailConfig(sync_notifications_enabled=False), test_user.id
    )
    assert db.query(Notification).count() == 1

    connection_service.update_config(
        db,
        connection.id,
        GoogleMailConfig(
            sync_notifications_enabled=False,
            synced_label=GoogleMailLabel(id="Label_1", name="Inbox zero"),
        ),
        test_user.id,
    )
    assert db.query(Notification).count() == 0


def test_update_config_unchanged_is_not_updated(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user)

    status = connection_service.update_config(db, connection.id, GithubConfig(), test_user.id)

    assert status.updated is False
    assert status.result == GithubConfig()


def test_update_config_rejects_other_provider_kind(db, test_user, make_connection, connection_service):
    connection = make_connection(test_user)

    with pytest.raises(InvalidInputError):
        connection_service.update_config(db, connection.id, TickTickConfig(), test_user.id)


def test_update_config_other_user_is_forbidden(db, test_user, make_user, make_connection, connection_service):
    connection = make_connection(test_user)

    with pytest.raises(ForbiddenError) as exc_info:
        connection_service.update_config(db, connection.id, GithubConfig(), make_user().id)

    assert f"integration connection {connection.id}" in str(exc_info.value)
