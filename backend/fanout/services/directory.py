"""
User directory: the set of known user ids a broadcast resolves against.

The resolver depends on the UserDirectory protocol, not on a table, so tests can pass a fake.
"""
import logging
from typing import Callable, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fanout.models.profile import Profile

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    def all_user_ids(self) -> set[str]:
        """Snapshot of every known user id at call time."""
        ...


class SqlUserDirectory:
    """Reads user ids from the profiles table in its own short-lived session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def all_user_ids(self) -> set[str]:
        db = self._session_factory()
        try:
            return {row[0] for row in db.query(Profile.id).all()}
        finally:
            db.close()


def register_profile(db: Session, user_id: str, email: str | None = None) -> bool:
    """
    Add a profile if missing. Returns True if created, False if it already existed.
    The account layer normally owns profiles; this is for the operator CLI and tests.
    """
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValueError("user_id is required")
    if db.get(Profile, user_id) is not None:
        return False
    try:
        with db.begin_nested():
            db.add(Profile(id=user_id, email=email))
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    logger.info("Registered profile %s", user_id)
    return True
