"""Protocol for push transports. All adapters take the same target and return the same result shape."""
from typing import Protocol

from fanout.services.transports.types import DeliveryTarget, SendResult


class TransportAdapter(Protocol):
    """Interface for webpush, APNs, OneSignal, etc. Same contract; only the wire format differs."""

    @property
    def transport(self) -> str:
        """Subscription.transport value this adapter serves (e.g. 'webpush')."""
        ...

    def send(self, target: DeliveryTarget) -> SendResult:
        """
        Deliver one payload to one endpoint within the adapter's own timeout.
        Classifies failures as permanent (evict) or transient (keep); should not raise.
        """
        ...
