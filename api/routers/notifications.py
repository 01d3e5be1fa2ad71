"""
Notifications API Endpoints.

Manual publishing into the notification outbox and outbox queries for the
messaging collaborator.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_facade
from api.errors import to_http_exception
from api.models import ErrorResponse, NotificationCreateRequest, NotificationResponse
from domain.notification import NotificationType, RecipientScope
from services.auction_facade import AuctionFacade

router = APIRouter()


@router.post(
    "/notifications",
    response_model=NotificationResponse,
    status_code=201,
    summary="Publish Notification",
    description="Append a notification to the outbox. COMPANY and USER scopes require recipient_id.",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def publish_notification(request: NotificationCreateRequest, facade: AuctionFacade = Depends(get_facade)):
    try:
        notification = facade.publish_notification(
            request.session_id,
            request.type,
            request.recipient_scope,
            request.message,
            recipient_id=request.recipient_id,
            priority=request.priority,
            slot_id=request.slot_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"code": "InvalidNotification", "message": str(e)})
    except Exception as e:
        raise to_http_exception(e, "publish notification")
    return NotificationResponse.from_domain(notification)


@router.get(
    "/notifications",
    response_model=List[NotificationResponse],
    summary="Query Notifications",
    description="Outbox notifications in the order they were appended.",
)
def list_notifications(
    session_id: Optional[UUID] = Query(None, description="Filter by auction session"),
    type: Optional[str] = Query(None, description="Filter by type (e.g. 'BID_OUTBID')"),
    recipient_scope: Optional[str] = Query(None, description="Filter by scope ('ALL', 'BIDDERS', 'COMPANY', 'USER')"),
    recipient_id: Optional[UUID] = Query(None, description="Filter by recipient"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results to return"),
    facade: AuctionFacade = Depends(get_facade),
):
    try:
        notification_type = NotificationType(type.upper()) if type else None
        scope = RecipientScope(recipient_scope.upper()) if recipient_scope else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"code": "InvalidFilter", "message": str(e)})

    try:
        notifications = facade.list_notifications(
            session_id=session_id,
            type=notification_type,
            recipient_scope=scope,
            recipient_id=recipient_id,
            limit=limit,
        )
    except Exception as e:
        raise to_http_exception(e, "list notifications")
    return [NotificationResponse.from_domain(n) for n in notifications]
