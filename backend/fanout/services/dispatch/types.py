"""Dispatch report: what happened to every delivery target of one dispatch."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fanout.services.transports.types import SendStatus


@dataclass
class TransportCounts:
    attempted: int = 0
    succeeded: int = 0
    permanent_failed: int = 0
    transient_failed: int = 0

    def add(self, status: SendStatus) -> None:
        self.attempted += 1
        if status == SendStatus.OK:
            self.succeeded += 1
        elif status == SendStatus.PERMANENT:
            self.permanent_failed += 1
        else:
            self.transient_failed += 1


@dataclass(frozen=True)
class TargetOutcome:
    subscription_id: int
    recipient_id: str
    transport: str
    status: SendStatus
    detail: str = ""


@dataclass
class DispatchReport:
    notification_id: int
    recipients: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    by_transport: dict[str, TransportCounts] = field(default_factory=dict)
    outcomes: list[TargetOutcome] = field(default_factory=list)
    # transport -> configuration error message; its targets are counted transient
    unavailable_transports: dict[str, str] = field(default_factory=dict)
    evicted: int = 0

    def record(self, outcome: TargetOutcome) -> None:
        self.outcomes.append(outcome)
        self.by_transport.setdefault(outcome.transport, TransportCounts()).add(outcome.status)

    @property
    def permanent_failures(self) -> list[TargetOutcome]:
        return [o for o in self.outcomes if o.status == SendStatus.PERMANENT]

    @property
    def attempted(self) -> int:
        return sum(c.attempted for c in self.by_transport.values())

    @property
    def succeeded(self) -> int:
        return sum(c.succeeded for c in self.by_transport.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "notificationId": self.notification_id,
            "recipients": self.recipients,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "evicted": self.evicted,
            "byTransport": {
                name: {
                    "attempted": c.attempted,
                    "succeeded": c.succeeded,
                    "permanentFailed": c.permanent_failed,
                    "transientFailed": c.transient_failed,
                }
                for name, c in sorted(self.by_transport.items())
            },
            "unavailableTransports": dict(self.unavailable_transports),
            "outcomes": [
                {
                    "subscriptionId": o.subscription_id,
                    "recipientId": o.recipient_id,
                    "transport": o.transport,
                    "status": o.status.value,
                    "detail": o.detail,
                }
                for o in self.outcomes
            ],
        }
