"""
Background dispatch: the write path hands (notification, recipients) to a shared executor and
returns; each job runs in its own session, sends, evicts dead endpoints, and records its report.

Jobs never raise into the pool: failures are logged and recorded so the pool stays alive and the
sender never sees push errors. The last DISPATCH_REPORT_HISTORY reports are kept per notification id.
"""
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from fanout.services.dispatch import DispatchReport, Dispatcher, NotificationPayload, reconcile

logger = logging.getLogger(__name__)

PENDING = "pending"
FAILED = "failed"


class DispatchRunner:
    def __init__(
        self,
        dispatcher: Dispatcher,
        session_factory: Callable[[], Session],
        max_workers: int = 2,
        history: int = 200,
        executor: Any | None = None,
    ):
        self._dispatcher = dispatcher
        self._session_factory = session_factory
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch_job")
        self._history = max(1, history)
        # notification id -> DispatchReport | PENDING | FAILED
        self._reports: OrderedDict[int, Any] = OrderedDict()
        self._lock = threading.Lock()

    def submit(self, notification: NotificationPayload, recipients: Iterable[str]) -> Future:
        """Schedule a dispatch. Raises RuntimeError if the runner was shut down."""
        recipients = frozenset(recipients)
        # PENDING goes first: an inline executor records the final report inside submit()
        self._remember(notification.id, PENDING)
        try:
            return self._executor.submit(self.run, notification, recipients)
        except RuntimeError:
            self._remember(notification.id, FAILED)
            raise

    def run(self, notification: NotificationPayload, recipients: Iterable[str]) -> DispatchReport | None:
        """Dispatch + reconcile in one session. Used by the pool; callable directly (CLI, tests)."""
        db = self._session_factory()
        try:
            report = self._dispatcher.dispatch(db, notification, recipients)
            # End the read transaction so eviction runs in a fresh one
            db.commit()
            reconcile(db, report)
            self._remember(notification.id, report)
            return report
        except Exception as e:
            logger.exception("Dispatch job for notification %s failed: %s", notification.id, e)
            db.rollback()
            self._remember(notification.id, FAILED)
            return None
        finally:
            db.close()

    def report_for(self, notification_id: int) -> Any:
        """Last DispatchReport for the id, PENDING/FAILED, or None if nothing recorded."""
        with self._lock:
            return self._reports.get(notification_id)

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)

    def _remember(self, notification_id: int, value: Any) -> None:
        with self._lock:
            self._reports[notification_id] = value
            self._reports.move_to_end(notification_id)
            while len(self._reports) > self._history:
                self._reports.popitem(last=False)
