"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inbox.db.base import Base
from inbox.db.enums import IntegrationConnectionStatus, IntegrationProviderKind
from inbox.db.types import JsonDocument, utcnow

if TYPE_CHECKING:
    from inbox.db.models import User


class IntegrationConnection(Base):
    """
    A user's OAuth connection to one provider, brokered by Nango.

    ``connection_id`` is the opaque broker handle. Connections are never
    deleted: disconnecting resets ``status`` to created.
    """

    __tablename__ = "integration_connections"
    __table_args__ = (
        Index("idx_integration_connections_user_provider", "user_id", "provider_kind", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    connection_id: Mapped[uuid.UUID] = mapped_column(
        unique=True, default=uuid.uuid4, nullable=False
    )
    provider_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=IntegrationConnectionStatus.CREATED.value,
        server_default=text(f"'{IntegrationConnectionStatus.CREATED.value}'"),
        nullable=False,
    )
    failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    registered_oauth_scopes: Mapped[list] = mapped_column(JsonDocument, default=list, nullable=False)
    provider_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Sync bookkeeping (never changes status)
    last_sync_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_sync_failure_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provider feature toggles, validated by inbox.schemas.integration_connection
    config: Mapped[dict] = mapped_column(JsonDocument, default=dict, nullable=False)
    # Cached provider metadata (label ids, workspace info, ...)
    context: Mapped[dict | None] = mapped_column(JsonDocument, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped["User"] = relationship()

    @property
    def provider(self) -> IntegrationProviderKind:
        return IntegrationProviderKind(self.provider_kind)

    @property
    def is_validated(self) -> bool:
        return self.status == IntegrationConnectionStatus.VALIDATED.value
