"""Pydantic schemas for notifications."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from inbox.db.enums import NotificationStatus


class NotificationDraft(BaseModel):
    """Notification fields derived by an adapter from an item (and its task)."""
    title: str = Field(..., min_length=1)
    status: NotificationStatus = NotificationStatus.UNREAD


class NotificationDetails(BaseModel):
    """Extra provider data fetched on demand for a notification."""
    url: str | None = None
    state: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class NotificationPatch(BaseModel):
    """Request to update a notification (partial)."""
    status: NotificationStatus | None = None
    snoozed_until: datetime | None = None


class NotificationRead(BaseModel):
    id: UUID
    title: str
    status: NotificationStatus
    kind: str
    source_item_id: UUID
    task_id: UUID | None
    snoozed_until: datetime | None
    last_read_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
