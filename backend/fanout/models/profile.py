"""Profile: one known user identity. Broadcast sends resolve against this table."""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from fanout.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(256), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
