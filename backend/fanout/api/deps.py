"""
Request dependencies: recipient identity and the process-wide notification service.

The service (and its dispatch runner / transport registry) is built once on first use from
settings; tests swap it via app.dependency_overrides[get_notification_service].
"""
import logging
import threading
from typing import Callable

from fastapi import Header, Query
from sqlalchemy.orm import Session

from fanout.config import settings
from fanout.core.constants import DEFAULT_RECIPIENT_ID
from fanout.scheduler.dispatch_job import DispatchRunner
from fanout.services.directory import SqlUserDirectory, UserDirectory
from fanout.services.dispatch import Dispatcher
from fanout.services.notifications import NotificationService
from fanout.services.recipients import RecipientResolver
from fanout.services.transports import AdapterRegistry, build_default_registry

logger = logging.getLogger(__name__)

_service: NotificationService | None = None
_runner: DispatchRunner | None = None
_lock = threading.Lock()


def recipient_id(
    x_recipient_id: str | None = Header(None, alias="X-Recipient-Id"),
    recipient_id: str | None = Query(None),
) -> str:
    return (x_recipient_id or recipient_id or DEFAULT_RECIPIENT_ID).strip() or DEFAULT_RECIPIENT_ID


def build_service(
    session_factory: Callable[[], Session],
    registry: AdapterRegistry | None = None,
    directory: UserDirectory | None = None,
    executor=None,
) -> tuple[NotificationService, DispatchRunner]:
    """Wire resolver, dispatcher, runner and facade. Pass executor to control where dispatch jobs run."""
    dispatcher = Dispatcher(
        registry or build_default_registry(settings),
        max_workers=settings.dispatch_max_concurrent_sends,
        timeout_seconds=settings.dispatch_timeout_seconds,
    )
    runner = DispatchRunner(
        dispatcher,
        session_factory,
        max_workers=settings.dispatch_job_workers,
        history=settings.dispatch_report_history,
        executor=executor,
    )
    service = NotificationService(
        session_factory,
        RecipientResolver(directory or SqlUserDirectory(session_factory)),
        runner,
        default_sender_label=settings.default_sender_label,
    )
    return service, runner


def get_notification_service() -> NotificationService:
    global _service, _runner
    with _lock:
        if _service is None:
            from fanout.db.session import SessionLocal

            _service, _runner = build_service(SessionLocal)
            logger.info("Notification service initialized")
        return _service


def shutdown_service() -> None:
    """Stop accepting dispatch jobs (in-flight jobs finish on their own threads)."""
    global _service, _runner
    with _lock:
        if _runner is not None:
            _runner.shutdown(wait=False)
        _service = None
        _runner = None
