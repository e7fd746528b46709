"""Notification: canonical message content, independent of recipients.

Immutable once created. Deleting one (admin action) removes its fanout_entries.
"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fanout.core.constants import DEFAULT_SENDER_LABEL, SENDER_LABEL_MAX_LENGTH, TITLE_MAX_LENGTH
from fanout.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    body = Column(Text, nullable=False)
    sender_label = Column(String(SENDER_LABEL_MAX_LENGTH), nullable=False, server_default=DEFAULT_SENDER_LABEL)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    entries = relationship(
        "FanoutEntry",
        back_populates="notification",
        cascade="all, delete-orphan",
    )
