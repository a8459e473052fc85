"""Integration connection enums."""

from enum import Enum


class IntegrationProviderKind(str, Enum):
    """Third-party services a user can connect."""

    GITHUB = "github"
    LINEAR = "linear"
    GOOGLE_MAIL = "google_mail"
    GOOGLE_CALENDAR = "google_calendar"
    SLACK = "slack"
    TODOIST = "todoist"
    TICKTICK = "ticktick"

    @property
    def is_task_service(self) -> bool:
        return self in TASK_SERVICE_PROVIDERS

    @property
    def notification_source_kind(self) -> "NotificationSourceKind":
        return NotificationSourceKind(self.value)

    @property
    def task_source_kind(self) -> "TaskSourceKind | None":
        try:
            return TaskSourceKind(self.value)
        except ValueError:
            return None


class IntegrationConnectionStatus(str, Enum):
    """
    Connection lifecycle.

    created -> validated (verify) -> failing (broker lost the connection)
    failing -> validated (verify); validated|failing -> created (disconnect)
    """

    CREATED = "created"
    VALIDATED = "validated"
    FAILING = "failing"


class TaskSourceKind(str, Enum):
    """Providers whose items become tasks."""

    TODOIST = "todoist"
    TICKTICK = "ticktick"
    LINEAR = "linear"
    SLACK = "slack"


class NotificationSourceKind(str, Enum):
    """Providers whose items become notifications."""

    GITHUB = "github"
    LINEAR = "linear"
    GOOGLE_MAIL = "google_mail"
    GOOGLE_CALENDAR = "google_calendar"
    SLACK = "slack"
    TODOIST = "todoist"
    TICKTICK = "ticktick"


# Providers that can host tasks created from other sources (sink providers)
TASK_SERVICE_PROVIDERS = frozenset(
    {IntegrationProviderKind.TODOIST, IntegrationProviderKind.TICKTICK}
)
