"""
Notification service: the two send entry points (broadcast, targeted) plus admin delete and
re-dispatch.

Every send follows the same protocol:
  1. validate title/body (and, for targeted, that recipients resolve to a non-empty set)
  2. insert the notification row
  3. resolve recipients
  4. bulk insert one unread fanout entry per recipient, then commit (2-4 land together or not at all)
  5. hand the push dispatch to the background runner

Step 5 is best-effort: once the commit succeeds the in-app notification exists and the send has
succeeded, whatever happens to pushes.
"""
import logging
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fanout.core.constants import (
    DEFAULT_SENDER_LABEL,
    RECIPIENT_ID_MAX_LENGTH,
    SENDER_LABEL_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)
from fanout.core.errors import FanoutEntryNotFoundError, NotificationNotFoundError, PersistenceError, ValidationError
from fanout.models.notification import Notification
from fanout.scheduler.dispatch_job import DispatchRunner
from fanout.services import ledger
from fanout.services.dispatch import NotificationPayload
from fanout.services.recipients import Broadcast, RecipientResolver, Target, TargetedList

logger = logging.getLogger(__name__)


def _require(value: str | None, field: str, max_length: int | None = None) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} must not be blank")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


class NotificationService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        resolver: RecipientResolver,
        runner: DispatchRunner,
        default_sender_label: str = DEFAULT_SENDER_LABEL,
    ):
        self._session_factory = session_factory
        self._resolver = resolver
        self._runner = runner
        self._default_sender_label = default_sender_label

    # --- Send ---

    def send_broadcast(self, title: str, body: str, sender_label: str | None = None) -> int:
        """Send to every known user. Returns the notification id."""
        return self._send(title, body, sender_label, Broadcast())

    def send_targeted(self, title: str, body: str, user_ids: Iterable[str], sender_label: str | None = None) -> int:
        """Send to the given users (duplicates collapse to one entry each). Returns the notification id."""
        return self._send(title, body, sender_label, TargetedList.of(user_ids))

    def _send(self, title: str, body: str, sender_label: str | None, target: Target) -> int:
        title = _require(title, "title", TITLE_MAX_LENGTH)
        body = _require(body, "body")
        sender_label = (sender_label or "").strip() or self._default_sender_label
        if len(sender_label) > SENDER_LABEL_MAX_LENGTH:
            raise ValidationError(f"senderLabel must be at most {SENDER_LABEL_MAX_LENGTH} characters")
        # Targeted lists resolve without I/O, so an empty list is rejected before anything is written
        recipients = self._resolver.resolve(target) if isinstance(target, TargetedList) else None

        db = self._session_factory()
        try:
            notification = Notification(title=title, body=body, sender_label=sender_label)
            db.add(notification)
            db.flush()
            if recipients is None:
                recipients = self._resolver.resolve(target)
            count = ledger.insert_entries(db, notification.id, recipients)
            db.commit()
            payload = NotificationPayload.from_model(notification)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Send failed, nothing recorded: %s", e)
            raise PersistenceError(f"Could not record notification: {e}") from e
        finally:
            db.close()

        logger.info(
            "Notification %s (%s) recorded for %s recipients",
            payload.id,
            "broadcast" if isinstance(target, Broadcast) else "targeted",
            count,
        )
        self._schedule(payload, recipients)
        return payload.id

    # --- Dispatch ---

    def _schedule(self, payload: NotificationPayload, recipients: Iterable[str]) -> bool:
        try:
            self._runner.submit(payload, recipients)
            return True
        except Exception as e:
            # The notification is committed and readable in-app; push is best-effort on top of it
            logger.error("Could not schedule dispatch for notification %s: %s", payload.id, e)
            return False

    def _load(self, db: Session, notification_id: int) -> NotificationPayload:
        notification = db.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)
        return NotificationPayload.from_model(notification)

    def redispatch(self, notification_id: int) -> bool:
        """Dispatch an existing notification again to everyone in its ledger."""
        db = self._session_factory()
        try:
            payload = self._load(db, notification_id)
            recipients = ledger.recipients_for(db, notification_id)
        finally:
            db.close()
        return self._schedule(payload, recipients)

    def dispatch_status(self, notification_id: int):
        """Last DispatchReport recorded for the notification, 'pending'/'failed', or None."""
        return self._runner.report_for(notification_id)

    def dispatch_for_entry(self, notification_id: int, recipient_id: str) -> bool:
        """Event-driven entry: a fanout row for (notification, recipient) was written elsewhere; push to that recipient."""
        recipient_id = _require(recipient_id, "userId", RECIPIENT_ID_MAX_LENGTH)
        db = self._session_factory()
        try:
            payload = self._load(db, notification_id)
            # Push only what the recipient can see and mark read in the feed
            if not ledger.has_entry(db, notification_id, recipient_id):
                raise FanoutEntryNotFoundError(notification_id, recipient_id)
        finally:
            db.close()
        return self._schedule(payload, [recipient_id])

    # --- Admin ---

    def delete_notification(self, notification_id: int) -> None:
        """Delete a notification and, by cascade, every recipient's entry for it."""
        db = self._session_factory()
        try:
            notification = db.get(Notification, notification_id)
            if notification is None:
                raise NotificationNotFoundError(notification_id)
            db.delete(notification)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Could not delete notification {notification_id}: {e}") from e
        finally:
            db.close()
        logger.info("Deleted notification %s", notification_id)
