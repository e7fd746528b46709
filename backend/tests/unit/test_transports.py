import base64
import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pywebpush import WebPushException

from fanout.config import Settings
from fanout.core.errors import TransportConfigError
from fanout.services.transports import DeliveryTarget, SendStatus
from fanout.services.transports import webpush as webpush_module
from fanout.services.transports.apns import ApnsAdapter
from fanout.services.transports.onesignal import OneSignalAdapter
from fanout.services.transports.webpush import WebPushAdapter


def _target(transport: str, descriptor) -> DeliveryTarget:
    return DeliveryTarget(
        subscription_id=7,
        recipient_id="alice",
        transport=transport,
        descriptor=descriptor,
        notification_id=42,
        title="Maintenance",
        body="Down at 2am",
    )


class _Response:
    def __init__(self, status_code: int):
        self.status_code = status_code


# --- Web push ---

WEBPUSH_SUB = {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "p", "auth": "a"}}


@pytest.fixture
def webpush_settings() -> Settings:
    return Settings(vapid_private_key="private-key", vapid_subject="mailto:ops@example.com")


def test_webpush_requires_vapid_settings() -> None:
    with pytest.raises(TransportConfigError, match="VAPID_PRIVATE_KEY"):
        WebPushAdapter(Settings(vapid_private_key="", vapid_subject="mailto:ops@example.com"))
    with pytest.raises(TransportConfigError, match="VAPID_SUBJECT"):
        WebPushAdapter(Settings(vapid_private_key="k", vapid_subject=""))


def test_webpush_sends_title_body_and_id(webpush_settings, monkeypatch) -> None:
    calls = []

    def fake_webpush(**kwargs):
        calls.append(kwargs)
        return _Response(201)

    monkeypatch.setattr(webpush_module, "webpush", fake_webpush)

    result = WebPushAdapter(webpush_settings).send(_target("webpush", WEBPUSH_SUB))

    assert result.status == SendStatus.OK
    assert calls[0]["subscription_info"] == WEBPUSH_SUB
    assert json.loads(calls[0]["data"]) == {"title": "Maintenance", "body": "Down at 2am", "notificationId": 42}
    assert calls[0]["vapid_claims"] == {"sub": "mailto:ops@example.com"}


@pytest.mark.parametrize(
    "status, expected",
    [(410, SendStatus.PERMANENT), (404, SendStatus.PERMANENT), (429, SendStatus.TRANSIENT), (500, SendStatus.TRANSIENT)],
)
def test_webpush_classifies_push_service_errors(webpush_settings, monkeypatch, status, expected) -> None:
    def fake_webpush(**kwargs):
        raise WebPushException("Push failed", response=_Response(status))

    monkeypatch.setattr(webpush_module, "webpush", fake_webpush)

    result = WebPushAdapter(webpush_settings).send(_target("webpush", WEBPUSH_SUB))

    assert result.status == expected
    assert result.status_code == status


def test_webpush_permanent_statuses_are_configurable(monkeypatch) -> None:
    def fake_webpush(**kwargs):
        raise WebPushException("Push failed", response=_Response(404))

    monkeypatch.setattr(webpush_module, "webpush", fake_webpush)
    settings = Settings(vapid_private_key="k", vapid_subject="mailto:x@example.com", webpush_permanent_statuses="410")

    assert WebPushAdapter(settings).send(_target("webpush", WEBPUSH_SUB)).status == SendStatus.TRANSIENT


def test_webpush_network_error_is_transient(webpush_settings, monkeypatch) -> None:
    def fake_webpush(**kwargs):
        raise ConnectionError("connection reset")

    monkeypatch.setattr(webpush_module, "webpush", fake_webpush)

    assert WebPushAdapter(webpush_settings).send(_target("webpush", WEBPUSH_SUB)).status == SendStatus.TRANSIENT


@pytest.mark.parametrize("descriptor", ["just-a-string", {"endpoint": "https://push/x"}, {"keys": {"p256dh": "p", "auth": "a"}}])
def test_webpush_malformed_subscription_is_permanent(webpush_settings, monkeypatch, descriptor) -> None:
    monkeypatch.setattr(webpush_module, "webpush", lambda **kwargs: pytest.fail("should not send"))

    assert WebPushAdapter(webpush_settings).send(_target("webpush", descriptor)).status == SendStatus.PERMANENT


# --- APNs ---


@pytest.fixture(scope="module")
def p8_base64() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return base64.b64encode(pem).decode()


@pytest.fixture
def apns_settings(p8_base64) -> Settings:
    return Settings(
        apns_key_id="KEY123",
        apns_team_id="TEAM456",
        apns_bundle_id="com.example.app",
        apns_key_p8_base64=p8_base64,
        apns_use_sandbox=True,
    )


def _apns(settings: Settings, handler) -> ApnsAdapter:
    return ApnsAdapter(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_apns_requires_credentials(p8_base64) -> None:
    with pytest.raises(TransportConfigError, match="APNS_KEY_ID"):
        ApnsAdapter(Settings(apns_key_id="", apns_team_id="T", apns_bundle_id="b", apns_key_p8_base64=p8_base64))
    with pytest.raises(TransportConfigError, match="APNS_KEY_P8"):
        ApnsAdapter(Settings(apns_key_id="K", apns_team_id="T", apns_bundle_id="b", apns_key_p8_base64="", apns_key_p8_path=""))


def test_apns_posts_to_device_with_provider_token(apns_settings) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    result = _apns(apns_settings, handler).send(_target("mobile-token", "abcdef0123"))

    assert result.status == SendStatus.OK
    request = seen[0]
    assert str(request.url) == "https://api.sandbox.push.apple.com/3/device/abcdef0123"
    assert request.headers["apns-topic"] == "com.example.app"
    token = request.headers["authorization"].removeprefix("bearer ")
    assert jwt.get_unverified_header(token)["kid"] == "KEY123"
    assert jwt.decode(token, options={"verify_signature": False})["iss"] == "TEAM456"
    body = json.loads(request.content)
    assert body["aps"]["alert"] == {"title": "Maintenance", "body": "Down at 2am"}
    assert body["notificationId"] == 42


@pytest.mark.parametrize(
    "status, reason, expected",
    [
        (410, "Unregistered", SendStatus.PERMANENT),
        (400, "BadDeviceToken", SendStatus.PERMANENT),
        (429, "TooManyRequests", SendStatus.TRANSIENT),
        (503, "ServiceUnavailable", SendStatus.TRANSIENT),
    ],
)
def test_apns_classifies_failures(apns_settings, status, reason, expected) -> None:
    adapter = _apns(apns_settings, lambda request: httpx.Response(status, json={"reason": reason}))
    result = adapter.send(_target("mobile-token", "abcdef0123"))
    assert result.status == expected
    assert result.status_code == status


def test_apns_connection_error_is_transient(apns_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    assert _apns(apns_settings, handler).send(_target("mobile-token", "abcdef0123")).status == SendStatus.TRANSIENT


def test_apns_accepts_token_object_and_rejects_missing_token(apns_settings) -> None:
    adapter = _apns(apns_settings, lambda request: httpx.Response(200))
    assert adapter.send(_target("mobile-token", {"token": "abc"})).status == SendStatus.OK
    assert adapter.send(_target("mobile-token", {"other": "x"})).status == SendStatus.PERMANENT


# --- OneSignal ---


@pytest.fixture
def onesignal_settings() -> Settings:
    return Settings(onesignal_app_id="app-1", onesignal_rest_api_key="rest-key")


def _onesignal(settings: Settings, handler) -> OneSignalAdapter:
    return OneSignalAdapter(settings, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_onesignal_requires_credentials() -> None:
    with pytest.raises(TransportConfigError):
        OneSignalAdapter(Settings(onesignal_app_id="", onesignal_rest_api_key="k"))


def test_onesignal_posts_player_id(onesignal_settings) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "n-1", "recipients": 1})

    result = _onesignal(onesignal_settings, handler).send(_target("relay-service", "player-1"))

    assert result.status == SendStatus.OK
    body = json.loads(seen[0].content)
    assert body["app_id"] == "app-1"
    assert body["include_player_ids"] == ["player-1"]
    assert body["headings"] == {"en": "Maintenance"}
    assert seen[0].headers["authorization"] == "Basic rest-key"


@pytest.mark.parametrize(
    "payload",
    [
        {"errors": {"invalid_player_ids": ["player-1"]}},
        {"errors": ["All included players are not subscribed"]},
    ],
)
def test_onesignal_dead_player_is_permanent(onesignal_settings, payload) -> None:
    adapter = _onesignal(onesignal_settings, lambda request: httpx.Response(200, json=payload))
    assert adapter.send(_target("relay-service", "player-1")).status == SendStatus.PERMANENT


def test_onesignal_server_error_is_transient(onesignal_settings) -> None:
    adapter = _onesignal(onesignal_settings, lambda request: httpx.Response(500, text="oops"))
    result = adapter.send(_target("relay-service", "player-1"))
    assert result.status == SendStatus.TRANSIENT
    assert result.status_code == 500
