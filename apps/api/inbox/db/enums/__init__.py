"""Enum definitions for application constants."""

from inbox.db.enums.integrations import (
    IntegrationConnectionStatus,
    IntegrationProviderKind,
    NotificationSourceKind,
    TASK_SERVICE_PROVIDERS,
    TaskSourceKind,
)
from inbox.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from inbox.db.enums.notifications import NotificationStatus
from inbox.db.enums.tasks import (
    DEFAULT_PROJECT_NAME,
    DEFAULT_TASK_PRIORITY,
    TaskPriority,
    TaskStatus,
)
from inbox.db.enums.third_party import ThirdPartyItemKind

__all__ = [
    "DEFAULT_JOB_STATUS",
    "DEFAULT_PROJECT_NAME",
    "DEFAULT_TASK_PRIORITY",
    "IntegrationConnectionStatus",
    "IntegrationProviderKind",
    "JobStatus",
    "JobType",
    "NotificationSourceKind",
    "NotificationStatus",
    "TASK_SERVICE_PROVIDERS",
    "TaskPriority",
    "TaskSourceKind",
    "TaskStatus",
    "ThirdPartyItemKind",
]
