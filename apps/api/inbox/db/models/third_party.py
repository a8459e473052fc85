"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inbox.db.base import Base
from inbox.db.enums import ThirdPartyItemKind
from inbox.db.types import JsonDocument, utcnow


class ThirdPartyItem(Base):
    """
    Canonical copy of a provider-native record.

    ``kind`` tags the provider payload stored in ``data``. Rows are updated in
    place when the provider payload changes and are never deleted.
    """

    __tablename__ = "third_party_items"
    __table_args__ = (
        UniqueConstraint(
            "source_id",
            "kind",
            "user_id",
            "integration_connection_id",
            name="uq_third_party_items_source",
        ),
        Index("idx_third_party_items_user_kind", "user_id", "kind"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    data: Mapped[dict] = mapped_column(JsonDocument, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    integration_connection_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("integration_connections.id", ondelete="CASCADE"), nullable=False
    )
    # Provenance for items derived from another item (e.g. an event found in a mail thread)
    source_item_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("third_party_items.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    source_item: Mapped["ThirdPartyItem | None"] = relationship(remote_side=[id])

    @property
    def item_kind(self) -> ThirdPartyItemKind:
        return ThirdPartyItemKind(self.kind)
