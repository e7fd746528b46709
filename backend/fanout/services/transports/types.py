"""Shared shapes for all transports. Same shape regardless of webpush/APNs/OneSignal."""
from dataclasses import dataclass
from enum import Enum
from typing import Any


class SendStatus(str, Enum):
    OK = "ok"
    PERMANENT = "permanent"  # endpoint gone (unsubscribed, expired, unknown); evict it
    TRANSIENT = "transient"  # network, rate limit, outage; keep it, next notification tries again


@dataclass(frozen=True)
class DeliveryTarget:
    """One subscription paired with one notification's payload. Unit of work for the dispatcher."""

    subscription_id: int
    recipient_id: str
    transport: str
    descriptor: Any
    notification_id: int
    title: str
    body: str


@dataclass(frozen=True)
class SendResult:
    status: SendStatus
    detail: str = ""
    status_code: int | None = None

    @classmethod
    def ok(cls, status_code: int | None = None) -> "SendResult":
        return cls(SendStatus.OK, "", status_code)

    @classmethod
    def permanent(cls, detail: str, status_code: int | None = None) -> "SendResult":
        return cls(SendStatus.PERMANENT, detail, status_code)

    @classmethod
    def transient(cls, detail: str, status_code: int | None = None) -> "SendResult":
        return cls(SendStatus.TRANSIENT, detail, status_code)


def push_payload(target: DeliveryTarget) -> dict[str, Any]:
    """Generic payload; service workers read title/body (see public/sw.js on the client)."""
    return {
        "title": target.title,
        "body": target.body,
        "notificationId": target.notification_id,
    }
