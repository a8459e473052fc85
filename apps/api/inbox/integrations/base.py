"""Contracts between the sync core and external collaborators.

The reconciler and cascade only ever talk to ``ProviderAdapter`` and
``ConnectionBroker``; concrete providers live in sibling modules and are
registered in ``inbox.integrations.registry``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from pydantic import BaseModel, Field

from inbox.core.errors import UnsupportedActionError
from inbox.db.enums import IntegrationProviderKind, TaskSourceKind, ThirdPartyItemKind
from inbox.schemas.notification import NotificationDetails, NotificationDraft
from inbox.schemas.task import ProjectSummary, TaskCreation, TaskCreationDefaults, TaskDraft
from inbox.schemas.third_party import ThirdPartyItemCreate
from inbox.types import JsonObject, ProviderRecord

if TYPE_CHECKING:
    from inbox.db.models import IntegrationConnection, Task, ThirdPartyItem


# =============================================================================
# Connection broker
# =============================================================================


class BrokerCredentials(BaseModel):
    access_token: str
    raw: dict[str, Any] = Field(default_factory=dict)


class BrokerConnection(BaseModel):
    """A connection as known by the OAuth broker."""

    connection_id: str
    provider_config_key: str
    credentials: BrokerCredentials
    metadata: dict[str, Any] | None = None

    @property
    def access_token(self) -> str:
        return self.credentials.access_token

    @property
    def registered_oauth_scopes(self) -> list[str]:
        scope = self.credentials.raw.get("scope")
        if not scope:
            return []
        if isinstance(scope, list):
            return [str(value) for value in scope]
        return [value for value in str(scope).replace(",", " ").split() if value]

    @property
    def provider_user_id(self) -> str | None:
        if not self.metadata:
            return None
        value = self.metadata.get("provider_user_id")
        return str(value) if value is not None else None

    @property
    def context(self) -> JsonObject | None:
        if not self.metadata:
            return None
        context = self.metadata.get("context")
        return context if isinstance(context, dict) else None


class ConnectionBroker(Protocol):
    async def get_connection(
        self, connection_id: UUID, provider_config_key: str
    ) -> BrokerConnection | None:
        """Return the live connection, or None when the broker does not know it."""
        ...

    async def delete_connection(self, connection_id: UUID, provider_config_key: str) -> None:
        ...


# =============================================================================
# Provider adapters
# =============================================================================


class ProviderAdapter:
    """
    One implementation per provider.

    Subclasses set ``provider_kind`` and ``item_kind`` and override the
    capabilities they support; everything else raises UnsupportedActionError.
    """

    provider_kind: IntegrationProviderKind
    item_kind: ThirdPartyItemKind

    def is_sync_incremental(self) -> bool:
        return False

    async def fetch_items(
        self,
        access_token: str,
        connection: "IntegrationConnection",
        user_id: UUID,
    ) -> list[ProviderRecord]:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot fetch items")

    def into_third_party_item(
        self,
        record: ProviderRecord,
        *,
        user_id: UUID,
        integration_connection_id: UUID,
    ) -> ThirdPartyItemCreate:
        raise UnsupportedActionError(
            f"{self.provider_kind.value} cannot convert records into third party items"
        )

    def mark_as_done(self, data: JsonObject) -> JsonObject:
        """Return a copy of an item payload flagged as completed upstream."""
        raise UnsupportedActionError(f"{self.provider_kind.value} items cannot be marked as done")

    # Task layer ---------------------------------------------------------------

    @property
    def is_task_source(self) -> bool:
        return False

    @property
    def task_source_kind(self) -> TaskSourceKind | None:
        return self.provider_kind.task_source_kind

    def task_creation_defaults(self, connection: "IntegrationConnection") -> TaskCreationDefaults:
        return TaskCreationDefaults()

    def build_task(self, item: "ThirdPartyItem") -> TaskDraft | None:
        return None

    # Notification layer -------------------------------------------------------

    def build_notification(
        self,
        item: "ThirdPartyItem",
        task: "Task | None",
        connection: "IntegrationConnection",
    ) -> NotificationDraft | None:
        return None

    async def fetch_notification_details(
        self, access_token: str, item: "ThirdPartyItem"
    ) -> NotificationDetails | None:
        return None

    async def delete_notification_from_source(
        self, access_token: str, item: "ThirdPartyItem"
    ) -> None:
        """Reflect a notification deleted in the inbox upstream. No-op by default."""
        return None

    # Task writes (task-capable providers) --------------------------------------

    async def create_task(self, access_token: str, creation: TaskCreation) -> ProviderRecord:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot create tasks")

    async def update_task(
        self, access_token: str, item: "ThirdPartyItem", patch: dict[str, Any]
    ) -> None:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot update tasks")

    async def complete_task(self, access_token: str, item: "ThirdPartyItem") -> None:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot complete tasks")

    async def uncomplete_task(self, access_token: str, item: "ThirdPartyItem") -> None:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot uncomplete tasks")

    async def delete_task(self, access_token: str, item: "ThirdPartyItem") -> None:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot delete tasks")

    async def list_projects(self, access_token: str) -> list[ProjectSummary]:
        raise UnsupportedActionError(f"{self.provider_kind.value} has no projects")

    async def create_project(self, access_token: str, name: str) -> ProjectSummary:
        raise UnsupportedActionError(f"{self.provider_kind.value} cannot create projects")
