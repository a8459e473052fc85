"""
Integration connections router - /integration-connections endpoints.

Connection lifecycle (create, verify, disconnect), provider config and
on-demand sync.
"""

from enum import Enum
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from inbox.core.deps import get_connection_service, get_current_user_id, get_db
from inbox.core.errors import InvalidInputError
from inbox.db.enums import IntegrationProviderKind
from inbox.integrations.registry import resolve_adapter
from inbox.jobs.handlers.sync import run_sync
from inbox.schemas.integration_connection import (
    IntegrationConnectionConfigUpdate,
    IntegrationConnectionCreate,
    IntegrationConnectionRead,
)
from inbox.services.integration_connection_service import IntegrationConnectionService


router = APIRouter(prefix="/integration-connections", tags=["integration-connections"])


# =============================================================================
# Schemas
# =============================================================================


class ConfigUpdateResponse(BaseModel):
    updated: bool
    config: dict


class SyncType(str, Enum):
    NOTIFICATIONS = "notifications"
    TASKS = "tasks"


class SyncResponse(BaseModel):
    """Counts of entities changed by an on-demand sync."""
    items: int
    tasks: int
    notifications: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[IntegrationConnectionRead])
def list_connections(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    return service.list_connections(db, user_id)


@router.post("", response_model=IntegrationConnectionRead, status_code=201)
def create_connection(
    data: IntegrationConnectionCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    connection = service.create_connection(db, user_id, data.provider_kind)
    db.commit()
    db.refresh(connection)
    return connection


@router.post("/{connection_id}/verify", response_model=IntegrationConnectionRead)
async def verify_connection(
    connection_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    status = await service.verify(db, connection_id, user_id)
    if status.result is None:
        raise HTTPException(status_code=404, detail=f"Cannot find integration connection {connection_id}")
    db.commit()
    db.refresh(status.result)
    return status.result


@router.post("/{connection_id}/disconnect", response_model=IntegrationConnectionRead)
async def disconnect_connection(
    connection_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    status = await service.disconnect(db, connection_id, user_id)
    if status.result is None:
        raise HTTPException(status_code=404, detail=f"Cannot find integration connection {connection_id}")
    db.commit()
    db.refresh(status.result)
    return status.result


@router.put("/{connection_id}/config", response_model=ConfigUpdateResponse)
def update_connection_config(
    connection_id: UUID,
    data: IntegrationConnectionConfigUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    status = service.update_config(db, connection_id, data.config, user_id)
    if status.result is None:
        raise HTTPException(status_code=404, detail=f"Cannot find integration connection {connection_id}")
    db.commit()
    return ConfigUpdateResponse(updated=status.updated, config=status.result.model_dump(mode="json"))


@router.post("/{provider_kind}/sync", response_model=SyncResponse)
async def sync_provider(
    provider_kind: IntegrationProviderKind,
    sync_type: SyncType = Query(SyncType.NOTIFICATIONS, alias="type"),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    adapter = resolve_adapter(provider_kind)
    if sync_type is SyncType.TASKS and not adapter.is_task_source:
        raise InvalidInputError(f"{provider_kind.value} does not provide tasks")
    results = await run_sync(db, adapter, user_id, connection_service=service)
    return SyncResponse(
        items=len(results),
        tasks=sum(1 for result in results if result.task is not None),
        notifications=sum(1 for result in results if result.notification is not None),
    )
