"""Push subscription: one (recipient, transport, endpoint) a push can be delivered to.

endpoint_descriptor: canonical JSON of the transport's opaque blob (webpush subscription object,
device token string, relay player id).
endpoint_key: sha256 of endpoint_descriptor; the unique key uses it so long descriptors index cheaply.
Row ids are never reused, so eviction by id cannot hit a re-registered endpoint.
"""
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from fanout.core.constants import RECIPIENT_ID_MAX_LENGTH
from fanout.db.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("recipient_id", "transport", "endpoint_key", name="uq_subscriptions_recipient_transport_endpoint"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String(RECIPIENT_ID_MAX_LENGTH), nullable=False, index=True)
    transport = Column(String(32), nullable=False)
    endpoint_descriptor = Column(Text, nullable=False)
    endpoint_key = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
