from fanout.db.base import Base
from fanout.db.session import get_db, engine, SessionLocal
from fanout.db.tables import ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES"]
