"""
Notifications router - /notifications endpoints.

Provides notification listing, status updates and provider details.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inbox.core.deps import get_connection_service, get_current_user_id, get_db
from inbox.core.errors import RecoverableError
from inbox.db.enums import NotificationStatus
from inbox.integrations.registry import adapters_by_item_kind
from inbox.schemas.notification import NotificationDetails, NotificationPatch, NotificationRead
from inbox.services import notification_service
from inbox.services.integration_connection_service import IntegrationConnectionService


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def list_notifications(
    status: list[NotificationStatus] | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return notification_service.list_notifications(db, user_id, status, limit=limit)


@router.patch("/{notification_id}", response_model=NotificationRead)
async def patch_notification(
    notification_id: UUID,
    data: NotificationPatch,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    status = notification_service.patch_notification(db, notification_id, data, user_id)
    notification = status.result
    if status.updated and notification.status == NotificationStatus.DELETED.value:
        adapter = adapters_by_item_kind().get(notification.source_item.kind)
        if adapter is not None:
            try:
                token = await service.resolve_access_token(db, user_id, adapter.provider_kind)
                if token is not None:
                    await adapter.delete_notification_from_source(
                        token.access_token, notification.source_item
                    )
            except RecoverableError:
                # Keep the user's patch and the connection status change
                db.commit()
                raise
    db.commit()
    db.refresh(notification)
    return notification


@router.get("/{notification_id}/details", response_model=NotificationDetails | None)
async def get_notification_details(
    notification_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    service: IntegrationConnectionService = Depends(get_connection_service),
):
    notification = notification_service.get_notification(db, notification_id)
    if notification is None or notification.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Cannot find notification {notification_id}")
    adapter = adapters_by_item_kind().get(notification.source_item.kind)
    if adapter is None:
        return None
    try:
        token = await service.resolve_access_token(db, user_id, adapter.provider_kind)
    except RecoverableError:
        db.commit()
        raise
    db.commit()
    if token is None:
        return None
    return await notification_service.fetch_notification_details(
        adapter, token.access_token, notification
    )
