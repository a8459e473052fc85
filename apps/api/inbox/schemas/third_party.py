"""Pydantic schemas for third-party items."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from inbox.db.enums import ThirdPartyItemKind


class ThirdPartyItemCreate(BaseModel):
    """Canonical item built by a provider adapter, before it is persisted."""
    source_id: str = Field(..., min_length=1, max_length=255)
    kind: ThirdPartyItemKind
    data: dict[str, Any]
    user_id: UUID
    integration_connection_id: UUID
    source_item_id: UUID | None = None


class ThirdPartyItemRead(BaseModel):
    id: UUID
    source_id: str
    kind: ThirdPartyItemKind
    data: dict[str, Any]
    integration_connection_id: UUID
    source_item_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
