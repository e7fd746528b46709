"""
Push transports: webpush, APNs (mobile-token), OneSignal (relay-service).
Each adapter speaks its own wire format but takes the same DeliveryTarget and returns the same
SendResult, so the dispatcher stays transport-agnostic.
"""
from fanout.services.transports.base import TransportAdapter
from fanout.services.transports.registry import AdapterRegistry, build_default_registry
from fanout.services.transports.types import DeliveryTarget, SendResult, SendStatus

__all__ = [
    "AdapterRegistry",
    "DeliveryTarget",
    "SendResult",
    "SendStatus",
    "TransportAdapter",
    "build_default_registry",
]
