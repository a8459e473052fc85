"""
Tasks router - /tasks endpoints.

Listing, user edits (forwarded to the providers hosting the task) and sink
item creation.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inbox.core.config import settings
from inbox.core.deps import (
    get_connection_service,
    get_current_user_id,
    get_db,
    get_project_cache,
)
from inbox.core.errors import ForbiddenError, RecoverableError
from inbox.db.enums import TaskStatus
from inbox.integrations.registry import adapters_by_item_kind, resolve_adapter
from inbox.schemas.task import SinkItemCreate, TaskPatch, TaskRead
from inbox.schemas.third_party import ThirdPartyItemRead
from inbox.services import task_service, third_party_item_service
from inbox.services.integration_connection_service import IntegrationConnectionService
from inbox.services.sink_project_cache import ProjectCache


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskRead])
def list_tasks(
    status: TaskStatus | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return task_service.list_tasks(db, user_id, status, limit=limit)


@router.patch("/{task_id}", response_model=TaskRead)
async def patch_task(
    task_id: UUID,
    data: TaskPatch,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    try:
        status = await task_service.patch_task(
            db,
            task_id,
            data,
            user_id,
            adapters=adapters_by_item_kind(),
            connection_service=service,
        )
    except RecoverableError:
        # Keep the local edit and the connection status change
        db.commit()
        raise
    db.commit()
    db.refresh(status.result)
    return status.result


@router.post("/{task_id}/sink-item", response_model=ThirdPartyItemRead)
async def create_sink_item(
    task_id: UUID,
    data: SinkItemCreate | None = None,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
    project_cache: ProjectCache = Depends(get_project_cache),
):
    task = task_service.get_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Cannot find task {task_id}")
    if task.user_id != user_id:
        raise ForbiddenError(f"Only the owner of the task {task_id} can create its sink item")

    try:
        item = await third_party_item_service.create_sink_item_from_task(
            db,
            task,
            sink_adapter=resolve_adapter(settings.DEFAULT_SINK_PROVIDER),
            connection_service=service,
            project_cache=project_cache,
            overwrite=data.overwrite if data else False,
        )
    except RecoverableError:
        db.commit()
        raise
    db.commit()
    db.refresh(item)
    return item
