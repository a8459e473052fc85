"""SQLAlchemy ORM models."""

from inbox.db.models.integrations import IntegrationConnection
from inbox.db.models.jobs import Job
from inbox.db.models.notifications import Notification
from inbox.db.models.tasks import Task
from inbox.db.models.third_party import ThirdPartyItem
from inbox.db.models.users import User

__all__ = [
    "IntegrationConnection",
    "Job",
    "Notification",
    "Task",
    "ThirdPartyItem",
    "User",
]
