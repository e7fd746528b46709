"""
Notifications API: send (broadcast / targeted), the recipient's feed and read state, admin delete,
and dispatch status.

Recipient identified by X-Recipient-Id header or ?recipient_id= (default 'default').
"""
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from fanout.api.deps import get_notification_service, recipient_id as _recipient_id
from fanout.core.constants import (
    FEED_DEFAULT_LIMIT,
    FEED_MAX_LIMIT,
    MARK_READ_MAX_IDS,
    RECIPIENT_ID_MAX_LENGTH,
    SENDER_LABEL_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)
from fanout.core.errors import FanoutError, service_error_to_http
from fanout.db.session import get_db
from fanout.services import ledger
from fanout.services.dispatch import DispatchReport
from fanout.services.notifications import NotificationService

router = APIRouter()
logger = logging.getLogger(__name__)


class BroadcastBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field("", max_length=TITLE_MAX_LENGTH)
    body: str = ""
    sender_label: str | None = Field(None, alias="senderLabel", max_length=SENDER_LABEL_MAX_LENGTH)


class TargetedBody(BroadcastBody):
    user_ids: list[Annotated[str, Field(max_length=RECIPIENT_ID_MAX_LENGTH)]] = Field(default_factory=list, alias="userIds")


class MarkReadBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notification_ids: list[int] = Field(..., alias="notificationIds", max_length=MARK_READ_MAX_IDS)


# --- Send ---


@router.post("/notifications/broadcast", status_code=201)
def send_broadcast(
    body: BroadcastBody,
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Send to every known user: in-app entry for each, push to each live endpoint (best-effort)."""
    try:
        notification_id = service.send_broadcast(body.title, body.body, body.sender_label)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {"notificationId": notification_id}


@router.post("/notifications/targeted", status_code=201)
def send_targeted(
    body: TargetedBody,
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Send to the listed users. Duplicate ids get one entry; an empty list is rejected with 400."""
    try:
        notification_id = service.send_targeted(body.title, body.body, body.user_ids, body.sender_label)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {"notificationId": notification_id}


# --- Feed ---


@router.get("/notifications")
def list_notifications(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
    limit: int = Query(FEED_DEFAULT_LIMIT, ge=1, le=FEED_MAX_LIMIT),
    offset: int = Query(0, ge=0),
) -> dict[str, Any]:
    """List the recipient's notifications, newest first, with the unread badge count."""
    rows = ledger.list_for(db, recipient_id, limit=limit, offset=offset)
    return {
        "notifications": [
            {
                "id": n.id,
                "title": n.title,
                "body": n.body,
                "senderLabel": n.sender_label,
                "createdAt": n.created_at.isoformat() if n.created_at else None,
                "isRead": bool(e.is_read),
                "readAt": e.read_at.isoformat() if e.read_at else None,
            }
            for n, e in rows
        ],
        "unreadCount": ledger.unread_count_for(db, recipient_id),
    }


@router.get("/notifications/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> dict[str, int]:
    return {"unreadCount": ledger.unread_count_for(db, recipient_id)}


# --- Read state ---


@router.post("/notifications/mark-read", status_code=204)
def mark_read(
    body: MarkReadBody,
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> Response:
    """Mark the given notifications read for this recipient. Already-read or unknown ids are ignored."""
    try:
        ledger.mark_read(db, recipient_id, body.notification_ids)
    except FanoutError as e:
        raise service_error_to_http(e)
    return Response(status_code=204)


@router.post("/notifications/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> dict[str, Any]:
    """Mark all notifications for the recipient as read (e.g. 'Clear all' in UI)."""
    try:
        updated = ledger.mark_all_read(db, recipient_id)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {"ok": True, "recipientId": recipient_id, "markedCount": updated}


# --- Admin / dispatch ---


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
) -> Response:
    """Delete a notification and every recipient's entry for it."""
    try:
        service.delete_notification(notification_id)
    except FanoutError as e:
        raise service_error_to_http(e)
    return Response(status_code=204)


@router.post("/notifications/{notification_id}/redispatch", status_code=202)
def redispatch(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Push an existing notification again to every recipient in its ledger."""
    try:
        scheduled = service.redispatch(notification_id)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {"notificationId": notification_id, "scheduled": scheduled}


@router.get("/notifications/{notification_id}/dispatch")
def dispatch_status(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Last dispatch report for the notification (kept in memory for recent dispatches only)."""
    status = service.dispatch_status(notification_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"No dispatch recorded for notification {notification_id}")
    if isinstance(status, DispatchReport):
        return {"status": "done", **status.to_dict()}
    return {"status": status, "notificationId": notification_id}
