"""Pydantic schemas for tasks."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from inbox.db.enums import TaskPriority, TaskStatus


class TaskCreationDefaults(BaseModel):
    """Connection-level defaults applied when a task is first created."""
    project: str | None = None
    due_at: datetime | None = None
    priority: TaskPriority | None = None


class TaskDraft(BaseModel):
    """Provider-sourced task fields derived from a third-party item."""
    title: str = Field(..., min_length=1)
    body: str = ""
    status: TaskStatus = TaskStatus.ACTIVE
    priority: TaskPriority | None = None
    due_at: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    project: str | None = None
    is_recurring: bool = False
    completed_at: datetime | None = None


class ProjectSummary(BaseModel):
    """A project as known by a task provider."""
    source_id: str
    name: str


class TaskCreation(BaseModel):
    """Request sent to a sink provider to materialize a task."""
    title: str
    body: str = ""
    project: ProjectSummary
    due_at: datetime | None = None
    priority: TaskPriority = TaskPriority.P4


class TaskPatch(BaseModel):
    """Request to update a task (partial)."""
    title: str | None = Field(None, min_length=1, max_length=500)
    body: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_at: datetime | None = None
    project: str | None = Field(None, min_length=1, max_length=255)


class SinkItemCreate(BaseModel):
    """Request to materialize a task in a sink provider."""
    overwrite: bool = False


class TaskRead(BaseModel):
    """Full task response."""
    id: UUID
    title: str
    body: str
    status: TaskStatus
    priority: TaskPriority
    due_at: datetime | None
    tags: list[str]
    project: str
    is_recurring: bool
    completed_at: datetime | None
    kind: str
    source_item_id: UUID
    sink_item_id: UUID | None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
