"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inbox.db.base import Base
from inbox.db.enums import NotificationStatus
from inbox.db.models.tasks import Task
from inbox.db.models.third_party import ThirdPartyItem
from inbox.db.types import utcnow


class Notification(Base):
    """Inbox entry derived from a task or directly from a provider notification."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_status", "user_id", "status"),
        Index("idx_notifications_user_kind", "user_id", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=NotificationStatus.UNREAD.value,
        server_default=text(f"'{NotificationStatus.UNREAD.value}'"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    source_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("third_party_items.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    task_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    snoozed_until: Mapped[datetime | None] = mapped_column(nullable=True)
    last_read_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    source_item: Mapped[ThirdPartyItem] = relationship()
    task: Mapped[Task | None] = relationship()
