import pytest

from fanout.core.errors import (
    EmptyTargetError,
    NotificationNotFoundError,
    PersistenceError,
    SubscriptionNotFoundError,
    TransportConfigError,
    ValidationError,
    service_error_to_http,
)


@pytest.mark.parametrize(
    "exc, status",
    [
        (ValidationError("title must not be blank"), 400),
        (EmptyTargetError(), 400),
        (NotificationNotFoundError(3), 404),
        (SubscriptionNotFoundError(9), 404),
        (PersistenceError("database is locked"), 503),
        (TransportConfigError("webpush", "VAPID_PRIVATE_KEY is not set"), 500),
        (RuntimeError("unexpected"), 500),
    ],
)
def test_service_error_to_http(exc, status) -> None:
    http_exc = service_error_to_http(exc)
    assert http_exc.status_code == status
    assert http_exc.detail == str(exc)
