"""
Fan-out ledger: one fanout_entries row per (notification, recipient); backs the in-app feed.

Rows are written once, in bulk, inside the sender's transaction (insert_entries does not commit).
Read state only moves unread -> read; marking again is a no-op.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fanout.core.errors import PersistenceError
from fanout.models.fanout_entry import FanoutEntry
from fanout.models.notification import Notification

logger = logging.getLogger(__name__)


def insert_entries(db: Session, notification_id: int, recipients: Iterable[str]) -> int:
    """
    Single multi-row INSERT of unread entries. Caller owns commit/rollback so the notification
    row and its entries land together or not at all.
    """
    rows = [
        {"notification_id": notification_id, "recipient_id": rid, "is_read": False}
        for rid in sorted(set(recipients))
    ]
    if not rows:
        return 0
    db.execute(insert(FanoutEntry), rows)
    return len(rows)


def mark_read(db: Session, recipient_id: str, notification_ids: Iterable[int]) -> int:
    """Mark the recipient's entries for these notifications read. Returns rows changed (0 if all were read)."""
    ids = {int(n) for n in notification_ids}
    if not ids:
        return 0
    now = datetime.now(timezone.utc)
    try:
        updated = (
            db.query(FanoutEntry)
            .filter(
                FanoutEntry.recipient_id == recipient_id,
                FanoutEntry.notification_id.in_(ids),
                FanoutEntry.is_read.is_(False),
            )
            .update({FanoutEntry.is_read: True, FanoutEntry.read_at: now}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not mark notifications read: {e}") from e
    return updated


def mark_all_read(db: Session, recipient_id: str) -> int:
    """Mark every unread entry of the recipient read (e.g. 'Clear all' in the feed)."""
    now = datetime.now(timezone.utc)
    try:
        updated = (
            db.query(FanoutEntry)
            .filter(FanoutEntry.recipient_id == recipient_id, FanoutEntry.is_read.is_(False))
            .update({FanoutEntry.is_read: True, FanoutEntry.read_at: now}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not mark notifications read: {e}") from e
    return updated


def unread_count_for(db: Session, recipient_id: str) -> int:
    return (
        db.query(func.count(FanoutEntry.id))
        .filter(FanoutEntry.recipient_id == recipient_id, FanoutEntry.is_read.is_(False))
        .scalar()
        or 0
    )


def list_for(db: Session, recipient_id: str, limit: int, offset: int = 0) -> list[tuple[Notification, FanoutEntry]]:
    """(notification, entry) pairs for the recipient, newest notification first."""
    return (
        db.query(Notification, FanoutEntry)
        .join(FanoutEntry, FanoutEntry.notification_id == Notification.id)
        .filter(FanoutEntry.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(max(0, offset))
        .limit(limit)
        .all()
    )


def recipients_for(db: Session, notification_id: int) -> set[str]:
    return {
        row[0]
        for row in db.query(FanoutEntry.recipient_id).filter(FanoutEntry.notification_id == notification_id).all()
    }


def has_entry(db: Session, notification_id: int, recipient_id: str) -> bool:
    return (
        db.query(FanoutEntry.id)
        .filter(FanoutEntry.notification_id == notification_id, FanoutEntry.recipient_id == recipient_id)
        .first()
        is not None
    )
