"""Integration connection lifecycle and access token resolution.

Connection status state machine:
- created   --verify ok-->          validated
- validated --broker unknown-->     failing
- failing   --verify ok-->          validated
- validated|failing --disconnect--> created

Sync bookkeeping (start/error/reset) never touches ``status``: a failing
sync is visible through ``last_sync_failure_message`` only. ``failing`` is
reserved for credential-level failures reported by the broker.

Methods flush but never commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from inbox.core.config import settings
from inbox.core.errors import (
    ForbiddenError,
    InvalidInputError,
    RecoverableError,
    UnexpectedError,
)
from inbox.core.structured_logging import build_log_context
from inbox.db.enums import IntegrationConnectionStatus, IntegrationProviderKind
from inbox.db.models import IntegrationConnection
from inbox.db.types import utcnow
from inbox.integrations.base import BrokerConnection, ConnectionBroker
from inbox.schemas.integration_connection import (
    ProviderConfig,
    default_config_for,
    parse_config,
)
from inbox.services import notification_service
from inbox.services.upsert import UpdateStatus, apply_changes
from inbox.types import JsonObject

logger = logging.getLogger(__name__)

UNKNOWN_BROKER_CONNECTION_MESSAGE = (
    "🔌 The OAuth connection is failing due to a technical issue on our end. "
    "Please try to reconnect the integration. If the issue keeps happening, "
    "please contact our support."
)


@dataclass
class AccessToken:
    """A live provider credential and the connection it was resolved from."""

    access_token: str
    connection: IntegrationConnection


class IntegrationConnectionService:
    """Owns connection state and resolves provider credentials through the broker."""

    def __init__(
        self,
        broker: ConnectionBroker,
        provider_config_keys: Mapping[str, str] | None = None,
    ) -> None:
        self.broker = broker
        self.provider_config_keys = dict(
            provider_config_keys if provider_config_keys is not None else settings.NANGO_PROVIDER_KEYS
        )

    def provider_config_key(self, provider_kind: IntegrationProviderKind | str) -> str:
        kind = IntegrationProviderKind(provider_kind).value
        key = self.provider_config_keys.get(kind)
        if not key:
            raise UnexpectedError(f"No broker provider config key for {kind}")
        return key

    # =========================================================================
    # Queries
    # =========================================================================

    def create_connection(
        self, db: Session, user_id: UUID, provider_kind: IntegrationProviderKind
    ) -> IntegrationConnection:
        connection = IntegrationConnection(
            user_id=user_id,
            provider_kind=provider_kind.value,
            status=IntegrationConnectionStatus.CREATED.value,
            registered_oauth_scopes=[],
            config=default_config_for(provider_kind).model_dump(mode="json"),
        )
        db.add(connection)
        db.flush()
        logger.info(
            "Integration connection created id=%s provider=%s",
            connection.id,
            provider_kind.value,
            extra=build_log_context(user_id=user_id, provider_kind=provider_kind.value),
        )
        return connection

    def get_connection(self, db: Session, connection_id: UUID) -> IntegrationConnection | None:
        return db.get(IntegrationConnection, connection_id)

    def list_connections(self, db: Session, user_id: UUID) -> list[IntegrationConnection]:
        return (
            db.query(IntegrationConnection)
            .filter(IntegrationConnection.user_id == user_id)
            .order_by(IntegrationConnection.created_at)
            .all()
        )

    def get_validated_connection(
        self, db: Session, user_id: UUID, provider_kind: IntegrationProviderKind
    ) -> IntegrationConnection | None:
        return (
            db.query(IntegrationConnection)
            .filter(
                IntegrationConnection.user_id == user_id,
                IntegrationConnection.provider_kind == provider_kind.value,
                IntegrationConnection.status == IntegrationConnectionStatus.VALIDATED.value,
            )
            .order_by(IntegrationConnection.created_at)
            .first()
        )

    def _get_owned_connection(
        self, db: Session, connection_id: UUID, user_id: UUID, action: str
    ) -> IntegrationConnection | None:
        connection = self.get_connection(db, connection_id)
        if connection is None:
            return None
        if connection.user_id != user_id:
            raise ForbiddenError(
                f"Only the owner of the integration connection {connection_id} can {action} it"
            )
        return connection

    # =========================================================================
    # Status transitions
    # =========================================================================

    def _update_status(
        self,
        db: Session,
        connection: IntegrationConnection,
        status: IntegrationConnectionStatus,
        failure_message: str | None,
        extra_values: dict[str, object] | None = None,
    ) -> UpdateStatus[IntegrationConnection]:
        previous_status = connection.status
        changes = apply_changes(
            connection,
            {"status": status.value, "failure_message": failure_message, **(extra_values or {})},
        )
        if not changes:
            return UpdateStatus(False, connection)
        db.flush()
        logger.info(
            "Integration connection %s status %s -> %s",
            connection.id,
            previous_status,
            connection.status,
            extra=build_log_context(
                user_id=connection.user_id,
                provider_kind=connection.provider_kind,
                connection_id=connection.id,
            ),
        )
        return UpdateStatus(True, connection)

    def _mark_failing(
        self, db: Session, connection: IntegrationConnection
    ) -> UpdateStatus[IntegrationConnection]:
        return self._update_status(
            db,
            connection,
            IntegrationConnectionStatus.FAILING,
            UNKNOWN_BROKER_CONNECTION_MESSAGE,
        )

    async def resolve_access_token(
        self, db: Session, user_id: UUID, provider_kind: IntegrationProviderKind
    ) -> AccessToken | None:
        """
        Return a live access token for the user's validated connection.

        None when the user has no validated connection for this provider.
        Raises RecoverableError when the broker no longer knows the connection,
        after flagging it as failing.
        """
        connection = self.get_validated_connection(db, user_id, provider_kind)
        if connection is None:
            return None

        broker_connection = await self.broker.get_connection(
            connection.connection_id, self.provider_config_key(provider_kind)
        )
        if broker_connection is None:
            self._mark_failing(db, connection)
            raise RecoverableError(f"Unknown broker connection: {connection.connection_id}")

        if connection.context is None and broker_connection.context is not None:
            connection.context = broker_connection.context
            db.flush()

        return AccessToken(broker_connection.access_token, connection)

    async def verify(
        self, db: Session, connection_id: UUID, user_id: UUID
    ) -> UpdateStatus[IntegrationConnection]:
        connection = self._get_owned_connection(db, connection_id, user_id, "verify")
        if connection is None:
            return UpdateStatus.not_found()

        broker_connection = await self.broker.get_connection(
            connection.connection_id, self.provider_config_key(connection.provider_kind)
        )
        if broker_connection is None:
            logger.warning(
                "Broker does not know connection %s, marking as failing",
                connection.connection_id,
                extra=build_log_context(user_id=user_id, connection_id=connection.id),
            )
            return self._mark_failing(db, connection)

        return self._validate(db, connection, broker_connection)

    def _validate(
        self,
        db: Session,
        connection: IntegrationConnection,
        broker_connection: BrokerConnection,
    ) -> UpdateStatus[IntegrationConnection]:
        values: dict[str, object] = {
            "provider_user_id": broker_connection.provider_user_id,
            "registered_oauth_scopes": broker_connection.registered_oauth_scopes,
        }
        if broker_connection.context is not None:
            values["context"] = broker_connection.context
        details_changed = bool(apply_changes(connection, values))
        status = self._update_status(db, connection, IntegrationConnectionStatus.VALIDATED, None)
        if details_changed:
            db.flush()
        return UpdateStatus(status.updated or details_changed, connection)

    async def disconnect(
        self, db: Session, connection_id: UUID, user_id: UUID
    ) -> UpdateStatus[IntegrationConnection]:
        connection = self._get_owned_connection(db, connection_id, user_id, "disconnect")
        if connection is None:
            return UpdateStatus.not_found()

        await self.broker.delete_connection(
            connection.connection_id, self.provider_config_key(connection.provider_kind)
        )
        return self._update_status(
            db,
            connection,
            IntegrationConnectionStatus.CREATED,
            None,
            extra_values={"provider_user_id": None},
        )

    async def sync_oauth_scopes(self, db: Session, user_id: UUID) -> list[IntegrationConnection]:
        """Refresh granted scopes of every validated connection of the user."""
        refreshed: list[IntegrationConnection] = []
        connections = (
            db.query(IntegrationConnection)
            .filter(
                IntegrationConnection.user_id == user_id,
                IntegrationConnection.status == IntegrationConnectionStatus.VALIDATED.value,
            )
            .all()
        )
        for connection in connections:
            broker_connection = await self.broker.get_connection(
                connection.connection_id, self.provider_config_key(connection.provider_kind)
            )
            if broker_connection is None:
                self._mark_failing(db, connection)
                continue
            if apply_changes(
                connection,
                {"registered_oauth_scopes": broker_connection.registered_oauth_scopes},
            ):
                refreshed.append(connection)
        db.flush()
        return refreshed

    # =========================================================================
    # Sync bookkeeping
    # =========================================================================

    def _update_sync_status(
        self,
        db: Session,
        user_id: UUID,
        provider_kind: IntegrationProviderKind,
        values: dict[str, object],
    ) -> UpdateStatus[IntegrationConnection]:
        connections = (
            db.query(IntegrationConnection)
            .filter(
                IntegrationConnection.user_id == user_id,
                IntegrationConnection.provider_kind == provider_kind.value,
                IntegrationConnection.status != IntegrationConnectionStatus.CREATED.value,
            )
            .order_by(IntegrationConnection.created_at)
            .all()
        )
        if not connections:
            return UpdateStatus.not_found()
        updated = False
        for connection in connections:
            updated = bool(apply_changes(connection, values)) or updated
        if updated:
            db.flush()
        return UpdateStatus(updated, connections[0])

    def start_sync(
        self, db: Session, user_id: UUID, provider_kind: IntegrationProviderKind
    ) -> UpdateStatus[IntegrationConnection]:
        return self._update_sync_status(
            db, user_id, provider_kind, {"last_sync_started_at": utcnow()}
        )

    def error_sync(
        self,
        db: Session,
        user_id: UUID,
        provider_kind: IntegrationProviderKind,
        message: str,
    ) -> UpdateStatus[IntegrationConnection]:
        return self._update_sync_status(
            db, user_id, provider_kind, {"last_sync_failure_message": message}
        )

    def reset_error_sync(
        self, db: Session, user_id: UUID, provider_kind: IntegrationProviderKind
    ) -> UpdateStatus[IntegrationConnection]:
        return self._update_sync_status(
            db, user_id, provider_kind, {"last_sync_failure_message": None}
        )

    # =========================================================================
    # Config & context
    # =========================================================================

    def update_config(
        self,
        db: Session,
        connection_id: UUID,
        new_config: ProviderConfig,
        user_id: UUID,
    ) -> UpdateStatus[ProviderConfig]:
        """
        Replace a connection's provider config.

        When a field that shapes synced data changes, cached context is dropped
        and the connection's notifications are purged so the next sync starts
        from scratch.
        """
        connection = self._get_owned_connection(db, connection_id, user_id, "patch")
        if connection is None:
            return UpdateStatus.not_found()

        provider_kind = connection.provider
        if getattr(new_config, "kind", None) != provider_kind.value:
            raise InvalidInputError(
                f"Config of kind {getattr(new_config, 'kind', None)} does not match "
                f"integration connection {connection_id} ({provider_kind.value})"
            )

        current_config = parse_config(connection.config, provider_kind)
        if current_config == new_config:
            return UpdateStatus(False, current_config)

        connection.config = new_config.model_dump(mode="json")
        if new_config.requires_resync(current_config):
            connection.context = None
            deleted = notification_service.delete_notifications_for_connection(
                db,
                user_id=connection.user_id,
                kind=provider_kind.notification_source_kind,
                integration_connection_id=connection.id,
            )
            logger.info(
                "Config change on connection %s purged %s notifications",
                connection.id,
                deleted,
                extra=build_log_context(
                    user_id=user_id,
                    provider_kind=provider_kind.value,
                    connection_id=connection.id,
                ),
            )
        db.flush()
        return UpdateStatus(True, new_config)

    def update_context(
        self, db: Session, connection_id: UUID, context: JsonObject | None
    ) -> UpdateStatus[IntegrationConnection]:
        connection = self.get_connection(db, connection_id)
        if connection is None:
            return UpdateStatus.not_found()
        if not apply_changes(connection, {"context": context}):
            return UpdateStatus(False, connection)
        db.flush()
        return UpdateStatus(True, connection)

    def get_config(self, connection: IntegrationConnection) -> ProviderConfig:
        return parse_config(connection.config, connection.provider)


def build_integration_connection_service() -> IntegrationConnectionService:
    from inbox.integrations.nango import NangoService

    return IntegrationConnectionService(NangoService())
