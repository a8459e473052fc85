"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inbox.db.base import Base
from inbox.db.enums import DEFAULT_TASK_PRIORITY, TaskStatus
from inbox.db.models.third_party import ThirdPartyItem
from inbox.db.types import JsonDocument, utcnow


class Task(Base):
    """
    Task derived from exactly one source item.

    ``sink_item`` is the optional copy of the task materialized in a
    task-capable provider (TickTick, Todoist) distinct from its source. Tasks
    sourced from such a provider use their source item as sink item.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_user_status", "user_id", "status"),
        Index("idx_tasks_sink_item", "sink_item_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=TaskStatus.ACTIVE.value,
        server_default=text(f"'{TaskStatus.ACTIVE.value}'"),
        nullable=False,
    )
    priority: Mapped[int] = mapped_column(
        Integer, default=int(DEFAULT_TASK_PRIORITY), nullable=False
    )
    due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    tags: Mapped[list] = mapped_column(JsonDocument, default=list, nullable=False)
    project: Mapped[str] = mapped_column(String(255), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)

    source_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("third_party_items.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    sink_item_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("third_party_items.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    source_item: Mapped[ThirdPartyItem] = relationship(foreign_keys=[source_item_id])
    sink_item: Mapped[ThirdPartyItem | None] = relationship(foreign_keys=[sink_item_id])

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.ACTIVE.value
