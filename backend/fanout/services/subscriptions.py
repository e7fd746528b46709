"""
Subscription registry: (recipient, transport, endpoint) rows that pushes are delivered to.

Registration is idempotent: the unique key (recipient_id, transport, endpoint_key) decides, and a
concurrent duplicate insert resolves to the existing row id instead of an error.
Rows are removed by explicit opt-out or by the health manager (by id) when a transport reports
the endpoint gone.
"""
import hashlib
import json
import logging
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fanout.core.constants import RECIPIENT_ID_MAX_LENGTH, TRANSPORTS
from fanout.core.errors import PersistenceError, ValidationError
from fanout.models.subscription import Subscription

logger = logging.getLogger(__name__)


def canonical_descriptor(endpoint_descriptor: Any) -> str:
    """
    Canonical JSON for an endpoint blob so the same endpoint always maps to the same key.
    Strings (device tokens, player ids) are stripped; objects get sorted keys.
    """
    if isinstance(endpoint_descriptor, str):
        endpoint_descriptor = endpoint_descriptor.strip()
        if not endpoint_descriptor:
            raise ValidationError("endpointDescriptor must not be blank")
    elif isinstance(endpoint_descriptor, dict):
        if not endpoint_descriptor:
            raise ValidationError("endpointDescriptor must not be empty")
    else:
        raise ValidationError("endpointDescriptor must be an object or a string")
    return json.dumps(endpoint_descriptor, sort_keys=True, separators=(",", ":"))


def endpoint_key(canonical: str) -> str:
    return hashlib.sha256(canonical.encode()).hexdigest()


def decode_descriptor(sub: Subscription) -> Any:
    """Stored canonical JSON back to the transport blob (dict or str)."""
    return json.loads(sub.endpoint_descriptor)


def upsert(db: Session, recipient_id: str, transport: str, endpoint_descriptor: Any) -> int:
    """
    Register an endpoint for a recipient. Returns the subscription id; an already-registered
    (recipient, transport, endpoint) returns the existing id.
    """
    recipient_id = (recipient_id or "").strip()
    if not recipient_id:
        raise ValidationError("recipient is required")
    if len(recipient_id) > RECIPIENT_ID_MAX_LENGTH:
        raise ValidationError(f"recipient must be at most {RECIPIENT_ID_MAX_LENGTH} characters")
    if transport not in TRANSPORTS:
        raise ValidationError(f"Unknown transport: {transport}. Available: {list(TRANSPORTS)}")
    canonical = canonical_descriptor(endpoint_descriptor)
    key = endpoint_key(canonical)

    def _existing() -> Subscription | None:
        return (
            db.query(Subscription)
            .filter(
                Subscription.recipient_id == recipient_id,
                Subscription.transport == transport,
                Subscription.endpoint_key == key,
            )
            .first()
        )

    try:
        existing = _existing()
        if existing:
            return existing.id
        row = Subscription(
            recipient_id=recipient_id,
            transport=transport,
            endpoint_descriptor=canonical,
            endpoint_key=key,
        )
        try:
            with db.begin_nested():
                db.add(row)
        except IntegrityError:
            # Lost a race with an identical registration; the savepoint rolled back, the row exists
            existing = _existing()
            if existing is None:
                raise
            db.commit()
            logger.debug("Subscription already registered for %s/%s (concurrent insert)", recipient_id, transport)
            return existing.id
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise PersistenceError(f"Could not register subscription: {e}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not register subscription: {e}") from e
    logger.info("Registered %s subscription %s for recipient %s", transport, row.id, recipient_id)
    return row.id


def remove(db: Session, subscription_id: int, recipient_id: str | None = None) -> bool:
    """Delete one subscription by id (scoped to recipient_id when given). False if no such row."""
    q = db.query(Subscription).filter(Subscription.id == subscription_id)
    if recipient_id is not None:
        q = q.filter(Subscription.recipient_id == recipient_id)
    try:
        deleted = q.delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not remove subscription {subscription_id}: {e}") from e
    if deleted:
        logger.info("Removed subscription %s", subscription_id)
    return bool(deleted)


def list_for(db: Session, recipient_id: str) -> list[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.recipient_id == recipient_id)
        .order_by(Subscription.created_at.asc(), Subscription.id.asc())
        .all()
    )


def list_for_many(db: Session, recipient_ids: Iterable[str]) -> list[Subscription]:
    """Live subscriptions for every given recipient (fresh read, no caching)."""
    ids = list(set(recipient_ids))
    if not ids:
        return []
    rows: list[Subscription] = []
    # Chunk the IN list so very large broadcasts stay under driver parameter limits
    for i in range(0, len(ids), 500):
        chunk = ids[i : i + 500]
        rows.extend(
            db.query(Subscription)
            .filter(Subscription.recipient_id.in_(chunk))
            .order_by(Subscription.id.asc())
            .all()
        )
    return rows
