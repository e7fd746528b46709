"""
Send browser push notifications via the Web Push protocol (pywebpush + VAPID).
Requires VAPID_PRIVATE_KEY and VAPID_SUBJECT in env; the adapter refuses to build without them.
"""
import json
import logging
from typing import Any

from pywebpush import WebPushException, webpush

from fanout.config import Settings, int_list
from fanout.core.constants import TRANSPORT_WEBPUSH
from fanout.core.errors import TransportConfigError
from fanout.services.transports.types import DeliveryTarget, SendResult, push_payload

logger = logging.getLogger(__name__)


def _subscription_info(descriptor: Any) -> dict[str, Any] | None:
    """Browser PushSubscription.toJSON() shape: {endpoint, keys: {p256dh, auth}}. None if malformed."""
    if not isinstance(descriptor, dict):
        return None
    endpoint = descriptor.get("endpoint")
    keys = descriptor.get("keys") or {}
    if not endpoint or not isinstance(keys, dict) or not keys.get("p256dh") or not keys.get("auth"):
        return None
    return {"endpoint": endpoint, "keys": {"p256dh": keys["p256dh"], "auth": keys["auth"]}}


class WebPushAdapter:
    def __init__(self, settings: Settings):
        if not settings.vapid_private_key:
            raise TransportConfigError(TRANSPORT_WEBPUSH, "VAPID_PRIVATE_KEY is not set")
        if not settings.vapid_subject:
            raise TransportConfigError(TRANSPORT_WEBPUSH, "VAPID_SUBJECT is not set")
        self._private_key = settings.vapid_private_key
        self._subject = settings.vapid_subject
        self._ttl = settings.webpush_ttl_seconds
        self._timeout = settings.send_timeout_seconds
        self._permanent_statuses = int_list(settings.webpush_permanent_statuses)

    @property
    def transport(self) -> str:
        return TRANSPORT_WEBPUSH

    def send(self, target: DeliveryTarget) -> SendResult:
        info = _subscription_info(target.descriptor)
        if info is None:
            # A subscription without endpoint/keys can never be delivered to
            return SendResult.permanent("malformed webpush subscription")
        try:
            resp = webpush(
                subscription_info=info,
                data=json.dumps(push_payload(target)),
                vapid_private_key=self._private_key,
                vapid_claims={"sub": self._subject},  # fresh dict: pywebpush adds aud/exp in place
                ttl=self._ttl,
                timeout=self._timeout,
                headers={"Urgency": "high"},
            )
            return SendResult.ok(getattr(resp, "status_code", None))
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            if status in self._permanent_statuses:
                return SendResult.permanent(f"push service returned {status}", status)
            logger.warning("WebPush failed for subscription %s: %s", target.subscription_id, e)
            return SendResult.transient(str(e), status)
        except Exception as e:
            logger.warning("WebPush request failed for subscription %s: %s", target.subscription_id, e)
            return SendResult.transient(str(e))
