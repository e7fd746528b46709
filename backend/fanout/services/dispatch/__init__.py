"""
Delivery: dispatcher (send to every live endpoint), report types, and health (evict dead endpoints).
"""
from fanout.services.dispatch.dispatcher import Dispatcher, NotificationPayload
from fanout.services.dispatch.health import reconcile
from fanout.services.dispatch.types import DispatchReport, TargetOutcome, TransportCounts

__all__ = [
    "DispatchReport",
    "Dispatcher",
    "NotificationPayload",
    "TargetOutcome",
    "TransportCounts",
    "reconcile",
]
