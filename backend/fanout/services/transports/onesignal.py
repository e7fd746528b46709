"""
Send pushes through the OneSignal relay (REST API, one player id per request).
Requires ONESIGNAL_APP_ID and ONESIGNAL_REST_API_KEY in env.

OneSignal answers 200 even for dead players; the body's "errors" tells us the player is gone:
  {"errors": {"invalid_player_ids": [...]}} or {"errors": ["All included players are not subscribed"]}
"""
import logging
from typing import Any

import httpx

from fanout.config import Settings, int_list
from fanout.core.constants import TRANSPORT_RELAY_SERVICE
from fanout.core.errors import TransportConfigError
from fanout.services.transports.types import DeliveryTarget, SendResult

logger = logging.getLogger(__name__)

_NOT_SUBSCRIBED = "not subscribed"


def _player_id(descriptor: Any) -> str | None:
    if isinstance(descriptor, str):
        return descriptor.strip() or None
    if isinstance(descriptor, dict):
        pid = descriptor.get("playerId") or descriptor.get("player_id") or descriptor.get("id")
        if isinstance(pid, str) and pid.strip():
            return pid.strip()
    return None


def _player_gone(data: Any, player_id: str) -> bool:
    errors = data.get("errors") if isinstance(data, dict) else None
    if isinstance(errors, dict):
        return player_id in (errors.get("invalid_player_ids") or [])
    if isinstance(errors, list):
        return any(isinstance(e, str) and _NOT_SUBSCRIBED in e.lower() for e in errors)
    return False


class OneSignalAdapter:
    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        if not settings.onesignal_app_id or not settings.onesignal_rest_api_key:
            raise TransportConfigError(
                TRANSPORT_RELAY_SERVICE, "ONESIGNAL_APP_ID and ONESIGNAL_REST_API_KEY are required"
            )
        self._app_id = settings.onesignal_app_id
        self._api_key = settings.onesignal_rest_api_key
        self._url = settings.onesignal_api_url
        self._timeout = settings.send_timeout_seconds
        self._permanent_statuses = int_list(settings.onesignal_permanent_statuses)
        self._client = client

    @property
    def transport(self) -> str:
        return TRANSPORT_RELAY_SERVICE

    def _post(self, payload: dict, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        with httpx.Client(timeout=self._timeout) as client:
            return client.post(self._url, json=payload, headers=headers)

    def send(self, target: DeliveryTarget) -> SendResult:
        player_id = _player_id(target.descriptor)
        if not player_id:
            return SendResult.permanent("missing player id")
        payload = {
            "app_id": self._app_id,
            "include_player_ids": [player_id],
            "headings": {"en": target.title},
            "contents": {"en": target.body},
            "data": {"notificationId": target.notification_id},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._api_key}",
        }
        try:
            resp = self._post(payload, headers)
        except httpx.HTTPError as e:
            logger.warning("OneSignal request failed for subscription %s: %s", target.subscription_id, e)
            return SendResult.transient(str(e))
        try:
            data = resp.json()
        except ValueError:
            data = None
        if resp.is_success:
            if _player_gone(data, player_id):
                return SendResult.permanent("player not subscribed", resp.status_code)
            return SendResult.ok(resp.status_code)
        if resp.status_code in self._permanent_statuses:
            return SendResult.permanent(f"OneSignal returned {resp.status_code}", resp.status_code)
        logger.warning("OneSignal returned %s for subscription %s: %s", resp.status_code, target.subscription_id, resp.text)
        return SendResult.transient(f"OneSignal returned {resp.status_code}", resp.status_code)
