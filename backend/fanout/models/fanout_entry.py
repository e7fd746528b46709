"""Fan-out entry: one row per (notification, recipient); the in-app feed reads these.

is_read: False until the recipient marks it read; never reverts.
read_at: set together with is_read.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, false
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fanout.core.constants import RECIPIENT_ID_MAX_LENGTH
from fanout.db.base import Base


class FanoutEntry(Base):
    __tablename__ = "fanout_entries"
    __table_args__ = (
        UniqueConstraint("notification_id", "recipient_id", name="uq_fanout_entries_notification_recipient"),
        Index("ix_fanout_entries_recipient_read", "recipient_id", "is_read"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(
        Integer,
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    recipient_id = Column(String(RECIPIENT_ID_MAX_LENGTH), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    notification = relationship("Notification", back_populates="entries")
