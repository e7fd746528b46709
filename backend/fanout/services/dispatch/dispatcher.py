"""
Delivery dispatcher: push one notification to every live endpoint of a set of recipients.

Subscriptions are read fresh per dispatch, flattened into DeliveryTargets and sent on a bounded
thread pool. Each send is isolated (one endpoint failing or hanging never stops the others) and
its outcome is recorded in a DispatchReport instead of raised. No retries: a transient failure is
logged and dropped; the endpoint stays registered and gets the next notification.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session

from fanout.core.errors import TransportConfigError
from fanout.services import subscriptions
from fanout.services.dispatch.types import DispatchReport, TargetOutcome
from fanout.services.transports.base import TransportAdapter
from fanout.services.transports.registry import AdapterRegistry
from fanout.services.transports.types import DeliveryTarget, SendResult, SendStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    """Detached copy of a notification's content; safe to hand to worker threads."""

    id: int
    title: str
    body: str

    @classmethod
    def from_model(cls, notification) -> "NotificationPayload":
        return cls(id=notification.id, title=notification.title, body=notification.body)


def _send_one(adapter: TransportAdapter, target: DeliveryTarget) -> SendResult:
    try:
        return adapter.send(target)
    except Exception as e:
        # Adapters should classify their own failures; anything that escapes is treated as transient
        logger.warning(
            "Transport %s raised for subscription %s: %s", target.transport, target.subscription_id, e, exc_info=True
        )
        return SendResult.transient(f"adapter error: {e}")


class Dispatcher:
    def __init__(self, registry: AdapterRegistry, max_workers: int = 8, timeout_seconds: float | None = 60.0):
        self._registry = registry
        self._max_workers = max(1, max_workers)
        self._timeout = timeout_seconds

    def build_targets(self, db: Session, notification: NotificationPayload, recipients: Iterable[str]) -> list[DeliveryTarget]:
        targets = []
        for sub in subscriptions.list_for_many(db, recipients):
            try:
                descriptor = subscriptions.decode_descriptor(sub)
            except ValueError:
                descriptor = None  # adapter reports it as malformed
            targets.append(
                DeliveryTarget(
                    subscription_id=sub.id,
                    recipient_id=sub.recipient_id,
                    transport=sub.transport,
                    descriptor=descriptor,
                    notification_id=notification.id,
                    title=notification.title,
                    body=notification.body,
                )
            )
        return targets

    def dispatch(self, db: Session, notification: NotificationPayload, recipients: Iterable[str]) -> DispatchReport:
        recipients = set(recipients)
        report = DispatchReport(
            notification_id=notification.id,
            recipients=len(recipients),
            started_at=datetime.now(timezone.utc),
        )
        targets = self.build_targets(db, notification, recipients)

        adapters: dict[str, TransportAdapter] = {}
        sendable: list[DeliveryTarget] = []
        for target in targets:
            name = target.transport
            if name not in adapters and name not in report.unavailable_transports:
                try:
                    adapters[name] = self._registry.get(name)
                except TransportConfigError as e:
                    report.unavailable_transports[name] = str(e)
            if name in report.unavailable_transports:
                report.record(_outcome(target, SendResult.transient("transport unavailable")))
            else:
                sendable.append(target)

        if sendable:
            self._send_all(sendable, adapters, report)
        report.finished_at = datetime.now(timezone.utc)

        logger.info(
            "Dispatch for notification %s: recipients=%s targets=%s succeeded=%s permanent=%s unavailable=%s",
            notification.id,
            report.recipients,
            report.attempted,
            report.succeeded,
            len(report.permanent_failures),
            sorted(report.unavailable_transports),
        )
        return report

    def _send_all(self, targets: list[DeliveryTarget], adapters: dict[str, TransportAdapter], report: DispatchReport) -> None:
        executor = ThreadPoolExecutor(
            max_workers=min(len(targets), self._max_workers),
            thread_name_prefix="push_send",
        )
        future_to_target = {executor.submit(_send_one, adapters[t.transport], t): t for t in targets}
        done = set()
        try:
            for future in as_completed(future_to_target, timeout=self._timeout):
                done.add(future)
                report.record(_outcome(future_to_target[future], future.result()))
        except FuturesTimeoutError:
            stalled = [f for f in future_to_target if f not in done]
            logger.warning(
                "Dispatch for notification %s timed out after %ss; %s sends still in flight",
                report.notification_id,
                self._timeout,
                len(stalled),
            )
            for future in stalled:
                # Finished after the deadline: record its real result
                if future.done() and not future.cancelled():
                    report.record(_outcome(future_to_target[future], future.result()))
                    continue
                future.cancel()
                report.record(_outcome(future_to_target[future], SendResult.transient("dispatch timeout")))
        finally:
            # Do not wait on stalled sends; each carries its own timeout and will finish on its own
            executor.shutdown(wait=False, cancel_futures=True)


def _outcome(target: DeliveryTarget, result: SendResult) -> TargetOutcome:
    if result.status == SendStatus.TRANSIENT:
        logger.debug(
            "Transient failure for subscription %s (%s): %s", target.subscription_id, target.transport, result.detail
        )
    return TargetOutcome(
        subscription_id=target.subscription_id,
        recipient_id=target.recipient_id,
        transport=target.transport,
        status=result.status,
        detail=result.detail,
    )
