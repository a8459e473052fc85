"""Pydantic schemas for integration connections and their provider configs."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from inbox.db.enums import IntegrationConnectionStatus, IntegrationProviderKind, TaskPriority


class PresetDueDate(str, Enum):
    """Relative due dates a user can pick as a task creation default."""

    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEKEND = "this_weekend"
    NEXT_WEEK = "next_week"

    def to_datetime(self, now: datetime) -> datetime:
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is PresetDueDate.TODAY:
            return start_of_day
        if self is PresetDueDate.TOMORROW:
            return start_of_day + timedelta(days=1)
        if self is PresetDueDate.THIS_WEEKEND:
            # Saturday of the current week (today if already on the weekend)
            return start_of_day + timedelta(days=max(0, 5 - start_of_day.weekday()))
        # Next Monday
        return start_of_day + timedelta(days=7 - start_of_day.weekday())


# =============================================================================
# Provider configs
# =============================================================================


class ProviderConfig(BaseModel):
    """
    Base for per-provider feature toggles.

    ``resync_fields`` lists the fields whose change invalidates previously
    synced data. Empty means any change does.
    """

    resync_fields: ClassVar[frozenset[str]] = frozenset()

    def requires_resync(self, previous: "ProviderConfig") -> bool:
        old = previous.model_dump(mode="json")
        new = self.model_dump(mode="json")
        fields = self.resync_fields or frozenset(new)
        return any(old.get(field) != new.get(field) for field in fields)


class GithubConfig(ProviderConfig):
    kind: Literal["github"] = "github"
    sync_notifications_enabled: bool = True


class LinearSyncTaskConfig(BaseModel):
    enabled: bool = False
    target_project: str | None = None
    default_due_at: PresetDueDate | None = None


class LinearConfig(ProviderConfig):
    kind: Literal["linear"] = "linear"
    sync_notifications_enabled: bool = True
    sync_task_config: LinearSyncTaskConfig = Field(default_factory=LinearSyncTaskConfig)


class GoogleMailLabel(BaseModel):
    id: str
    name: str


class GoogleMailConfig(ProviderConfig):
    kind: Literal["google_mail"] = "google_mail"
    sync_notifications_enabled: bool = True
    synced_label: GoogleMailLabel = Field(
        default_factory=lambda: GoogleMailLabel(id="STARRED", name="Starred")
    )

    resync_fields: ClassVar[frozenset[str]] = frozenset({"synced_label"})


class GoogleCalendarConfig(ProviderConfig):
    kind: Literal["google_calendar"] = "google_calendar"
    sync_event_details_enabled: bool = True


class SlackConfig(ProviderConfig):
    kind: Literal["slack"] = "slack"
    sync_enabled: bool = True
    sync_as_tasks: bool = False
    target_project: str | None = None
    default_due_at: PresetDueDate | None = None
    default_priority: TaskPriority | None = None


class TodoistConfig(ProviderConfig):
    kind: Literal["todoist"] = "todoist"
    sync_tasks_enabled: bool = True
    create_notification_from_inbox_task: bool = False


class TickTickConfig(ProviderConfig):
    kind: Literal["ticktick"] = "ticktick"
    sync_tasks_enabled: bool = True
    create_notification_from_inbox_task: bool = False
    default_project: str | None = None
    default_due_at: PresetDueDate | None = None
    default_priority: TaskPriority | None = None


IntegrationConnectionConfig = Annotated[
    Union[
        GithubConfig,
        LinearConfig,
        GoogleMailConfig,
        GoogleCalendarConfig,
        SlackConfig,
        TodoistConfig,
        TickTickConfig,
    ],
    Field(discriminator="kind"),
]

_CONFIG_ADAPTER: TypeAdapter[IntegrationConnectionConfig] = TypeAdapter(IntegrationConnectionConfig)

_DEFAULT_CONFIGS: dict[IntegrationProviderKind, type[ProviderConfig]] = {
    IntegrationProviderKind.GITHUB: GithubConfig,
    IntegrationProviderKind.LINEAR: LinearConfig,
    IntegrationProviderKind.GOOGLE_MAIL: GoogleMailConfig,
    IntegrationProviderKind.GOOGLE_CALENDAR: GoogleCalendarConfig,
    IntegrationProviderKind.SLACK: SlackConfig,
    IntegrationProviderKind.TODOIST: TodoistConfig,
    IntegrationProviderKind.TICKTICK: TickTickConfig,
}


def default_config_for(provider_kind: IntegrationProviderKind) -> ProviderConfig:
    return _DEFAULT_CONFIGS[provider_kind]()


def parse_config(raw: dict[str, Any] | None, provider_kind: IntegrationProviderKind) -> ProviderConfig:
    """Load a stored config, falling back to provider defaults for empty rows."""
    if not raw:
        return default_config_for(provider_kind)
    return _CONFIG_ADAPTER.validate_python(raw)


# =============================================================================
# API schemas
# =============================================================================


class IntegrationConnectionCreate(BaseModel):
    """Request to create a connection before the OAuth dance."""
    provider_kind: IntegrationProviderKind


class IntegrationConnectionConfigUpdate(BaseModel):
    """Request to replace a connection's provider config."""
    config: IntegrationConnectionConfig


class IntegrationConnectionRead(BaseModel):
    id: UUID
    connection_id: UUID
    provider_kind: IntegrationProviderKind
    status: IntegrationConnectionStatus
    failure_message: str | None
    registered_oauth_scopes: list[str]
    provider_user_id: str | None
    last_sync_started_at: datetime | None
    last_sync_failure_message: str | None
    config: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
