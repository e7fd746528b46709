"""
Change-data-capture entry point: a fanout row was inserted by a database trigger rather than by
the send API, and the trigger posts {"record": {"userId", "notificationId"}} here to get it pushed.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from fanout.api.deps import get_notification_service
from fanout.core.constants import RECIPIENT_ID_MAX_LENGTH
from fanout.core.errors import FanoutError, service_error_to_http
from fanout.services.notifications import NotificationService

router = APIRouter()
logger = logging.getLogger(__name__)


class FanoutRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, max_length=RECIPIENT_ID_MAX_LENGTH)
    notification_id: int = Field(..., alias="notificationId")


class FanoutEntryEvent(BaseModel):
    record: FanoutRecord


@router.post("/notifications/events/fanout-entry", status_code=202)
def fanout_entry_inserted(
    event: FanoutEntryEvent,
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    """Push an existing notification to the single recipient named in the event."""
    try:
        scheduled = service.dispatch_for_entry(event.record.notification_id, event.record.user_id)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {
        "notificationId": event.record.notification_id,
        "recipientId": event.record.user_id.strip(),
        "scheduled": scheduled,
    }
