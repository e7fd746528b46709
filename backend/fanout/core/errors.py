"""
Centralized error handling for the notification engine.
Service-level exceptions plus a reusable helper so routes stay thin and new error types are easy to add.
"""
from __future__ import annotations

from typing import Callable

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Service exceptions
# ---------------------------------------------------------------------------


class FanoutError(Exception):
    """Base for errors raised by notification services."""


class ValidationError(FanoutError):
    """Blank title/body, unknown transport, malformed descriptor. Raised before any write."""


class EmptyTargetError(ValidationError):
    """Targeted send resolved to no recipients."""

    def __init__(self, message: str = "userIds must contain at least one recipient"):
        super().__init__(message)


class NotificationNotFoundError(FanoutError):
    def __init__(self, notification_id: int):
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class FanoutEntryNotFoundError(FanoutError):
    """The recipient has no feed entry for the notification, so there is nothing to push."""

    def __init__(self, notification_id: int, recipient_id: str):
        super().__init__(f"No entry for recipient {recipient_id} on notification {notification_id}")
        self.notification_id = notification_id
        self.recipient_id = recipient_id


class SubscriptionNotFoundError(FanoutError):
    def __init__(self, subscription_id: int):
        super().__init__(f"Subscription {subscription_id} not found")
        self.subscription_id = subscription_id


class PersistenceError(FanoutError):
    """Storage unavailable or write rejected; nothing from the failed call was committed."""


class TransportConfigError(FanoutError):
    """Transport credentials missing or unreadable. Raised when an adapter is built."""

    def __init__(self, transport: str, message: str):
        super().__init__(f"{transport}: {message}")
        self.transport = transport


# ---------------------------------------------------------------------------
# Constants: status codes
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500
STATUS_SERVICE_UNAVAILABLE = 503  # database down or write rejected


# ---------------------------------------------------------------------------
# Error rules: (predicate, status_code). Detail is the exception message.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

def _is(*types: type[Exception]) -> Callable[[Exception], bool]:
    return lambda exc: isinstance(exc, types)


# First match wins.
SERVICE_ERROR_RULES: list[tuple[Callable[[Exception], bool], int]] = [
    (_is(ValidationError), STATUS_BAD_REQUEST),
    (_is(NotificationNotFoundError, FanoutEntryNotFoundError, SubscriptionNotFoundError), STATUS_NOT_FOUND),
    (_is(PersistenceError), STATUS_SERVICE_UNAVAILABLE),
]


def service_error_to_http(exc: Exception) -> HTTPException:
    """
    Map an exception from a notification service into an HTTPException.
    Uses SERVICE_ERROR_RULES for known error types; otherwise returns 500 with the exception message.
    """
    for predicate, status_code in SERVICE_ERROR_RULES:
        if predicate(exc):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=str(exc))
