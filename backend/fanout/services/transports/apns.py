"""
Send mobile push notifications via Apple Push Notification service (APNs).
Requires APNS_KEY_ID, APNS_TEAM_ID, APNS_BUNDLE_ID, and APNS_KEY_P8_PATH or APNS_KEY_P8_BASE64 in env.
If not configured the adapter refuses to build; the dispatcher then reports mobile-token unavailable.
mobile-token descriptors must be APNs device tokens: an FCM token gets BadDeviceToken and is evicted.
"""
import base64
import logging
import threading
import time
from pathlib import Path
from typing import Any

import httpx
import jwt

from fanout.config import Settings, int_list, str_list
from fanout.core.constants import TRANSPORT_MOBILE_TOKEN
from fanout.core.errors import TransportConfigError
from fanout.services.transports.types import DeliveryTarget, SendResult

logger = logging.getLogger(__name__)

# APNs host: sandbox for dev builds, production for release
APNS_SANDBOX = "https://api.sandbox.push.apple.com"
APNS_PRODUCTION = "https://api.push.apple.com"

# APNs accepts provider tokens with iat within the last hour
_JWT_EXPIRY_SECONDS = 55 * 60  # refresh a bit before 1 hour


def _load_p8_key(settings: Settings) -> str:
    """Load .p8 key from APNS_KEY_P8_BASE64 or APNS_KEY_P8_PATH."""
    if settings.apns_key_p8_base64:
        try:
            return base64.b64decode(settings.apns_key_p8_base64).decode("utf-8")
        except Exception as e:
            raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, f"APNS_KEY_P8_BASE64 decode failed: {e}") from e
    path = settings.apns_key_p8_path
    if path and Path(path).exists():
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, f"APNS_KEY_P8_PATH read failed: {e}") from e
    raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, "APNS_KEY_P8_PATH or APNS_KEY_P8_BASE64 is not set")


def _device_token(descriptor: Any) -> str | None:
    if isinstance(descriptor, str):
        return descriptor.strip() or None
    if isinstance(descriptor, dict):
        token = descriptor.get("token") or descriptor.get("deviceToken")
        if isinstance(token, str) and token.strip():
            return token.strip()
    return None


class ApnsAdapter:
    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        if not settings.apns_key_id or not settings.apns_team_id:
            raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, "APNS_KEY_ID and APNS_TEAM_ID are required")
        if not settings.apns_bundle_id:
            raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, "APNS_BUNDLE_ID is not set")
        self._key_id = settings.apns_key_id
        self._team_id = settings.apns_team_id
        self._bundle_id = settings.apns_bundle_id
        self._p8 = _load_p8_key(settings)
        self._base_url = APNS_SANDBOX if settings.apns_use_sandbox else APNS_PRODUCTION
        self._timeout = settings.send_timeout_seconds
        self._permanent_statuses = int_list(settings.apns_permanent_statuses)
        self._permanent_reasons = str_list(settings.apns_permanent_reasons)
        self._client = client
        # JWT cache: (token_string, expiry_epoch); sends run on several threads
        self._jwt_cache: tuple[str, float] | None = None
        self._jwt_lock = threading.Lock()
        # Fail fast on a bad key instead of on the first send
        self._provider_token()

    @property
    def transport(self) -> str:
        return TRANSPORT_MOBILE_TOKEN

    def _provider_token(self) -> str:
        now = time.time()
        with self._jwt_lock:
            if self._jwt_cache and self._jwt_cache[1] > now:
                return self._jwt_cache[0]
            try:
                token = jwt.encode(
                    {"iss": self._team_id, "iat": int(now)},
                    self._p8,
                    algorithm="ES256",
                    headers={"alg": "ES256", "kid": self._key_id},
                )
            except Exception as e:
                raise TransportConfigError(TRANSPORT_MOBILE_TOKEN, f"APNs JWT build failed: {e}") from e
            if isinstance(token, bytes):
                token = token.decode("utf-8")
            self._jwt_cache = (token, now + _JWT_EXPIRY_SECONDS)
            return token

    def _post(self, url: str, payload: dict, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=payload, headers=headers, timeout=self._timeout)
        with httpx.Client(http2=True, timeout=self._timeout) as client:
            return client.post(url, json=payload, headers=headers)

    def send(self, target: DeliveryTarget) -> SendResult:
        device_token = _device_token(target.descriptor)
        if not device_token:
            return SendResult.permanent("missing device token")
        url = f"{self._base_url}/3/device/{device_token}"
        headers = {
            "authorization": f"bearer {self._provider_token()}",
            "apns-topic": self._bundle_id,
            "apns-push-type": "alert",
            "apns-priority": "10",
        }
        payload = {
            "aps": {
                "alert": {"title": target.title, "body": target.body},
                "sound": "default",
            },
            "notificationId": target.notification_id,
        }
        try:
            resp = self._post(url, payload, headers)
        except httpx.HTTPError as e:
            logger.warning("APNs request failed for subscription %s: %s", target.subscription_id, e)
            return SendResult.transient(str(e))
        if resp.status_code == 200:
            return SendResult.ok(200)
        reason = ""
        try:
            reason = (resp.json() or {}).get("reason", "")
        except ValueError:
            pass
        if resp.status_code in self._permanent_statuses or reason in self._permanent_reasons:
            return SendResult.permanent(reason or f"APNs returned {resp.status_code}", resp.status_code)
        logger.warning(
            "APNs returned %s for token %s...: %s", resp.status_code, device_token[:20], reason or resp.text
        )
        return SendResult.transient(reason or f"APNs returned {resp.status_code}", resp.status_code)
