"""Push subscription registration: endpoints (browser push, device tokens, relay player ids) per recipient."""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from fanout.api.deps import recipient_id as _recipient_id
from fanout.core.constants import TRANSPORTS
from fanout.core.errors import FanoutError, SubscriptionNotFoundError, service_error_to_http
from fanout.db.session import get_db
from fanout.services import subscriptions

router = APIRouter()
logger = logging.getLogger(__name__)

_TRANSPORT_PATTERN = "^(" + "|".join(TRANSPORTS) + ")$"


class RegisterSubscriptionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transport: str = Field(..., pattern=_TRANSPORT_PATTERN, description=f"One of {list(TRANSPORTS)}")
    endpoint_descriptor: dict[str, Any] | str = Field(
        ...,
        alias="endpointDescriptor",
        description="webpush: PushSubscription.toJSON(); mobile-token: device token; relay-service: player id",
    )


@router.post("/subscriptions")
def register_subscription(
    body: RegisterSubscriptionBody,
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> dict[str, Any]:
    """
    Register an endpoint for push notifications for the calling recipient.
    Idempotent: the same (recipient, transport, endpoint) returns the existing subscription id.
    """
    try:
        subscription_id = subscriptions.upsert(db, recipient_id, body.transport, body.endpoint_descriptor)
    except FanoutError as e:
        raise service_error_to_http(e)
    return {"subscriptionId": subscription_id}


@router.get("/subscriptions")
def list_subscriptions(
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> dict[str, Any]:
    rows = subscriptions.list_for(db, recipient_id)
    return {
        "subscriptions": [
            {
                "id": s.id,
                "transport": s.transport,
                "endpointDescriptor": subscriptions.decode_descriptor(s),
                "createdAt": s.created_at.isoformat() if s.created_at else None,
            }
            for s in rows
        ]
    }


@router.delete("/subscriptions/{subscription_id}", status_code=204)
def delete_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    recipient_id: str = Depends(_recipient_id),
) -> Response:
    """Opt out: remove one of the caller's subscriptions."""
    try:
        if not subscriptions.remove(db, subscription_id, recipient_id=recipient_id):
            raise SubscriptionNotFoundError(subscription_id)
    except FanoutError as e:
        raise service_error_to_http(e)
    return Response(status_code=204)
