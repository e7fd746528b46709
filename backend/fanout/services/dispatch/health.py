"""
Endpoint health: evict subscriptions whose transport reported the endpoint gone.

Eviction deletes by subscription id, the exact row read at dispatch time, never by endpoint value.
A row already deleted (user opted out meanwhile) is a harmless no-op, and a re-registration after
the row was deleted gets a new id, so a stale eviction cannot remove it.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fanout.models.subscription import Subscription
from fanout.services.dispatch.types import DispatchReport

logger = logging.getLogger(__name__)


def reconcile(db: Session, report: DispatchReport) -> int:
    """Delete every permanently failed subscription in the report. Returns rows deleted."""
    ids = sorted({o.subscription_id for o in report.permanent_failures})
    if not ids:
        return 0
    try:
        deleted = (
            db.query(Subscription)
            .filter(Subscription.id.in_(ids))
            .delete(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Evicting %s dead subscriptions failed: %s", len(ids), e)
        return 0
    report.evicted = deleted
    for o in report.permanent_failures:
        logger.info(
            "Evicted %s subscription %s for recipient %s: %s", o.transport, o.subscription_id, o.recipient_id, o.detail
        )
    return deleted
