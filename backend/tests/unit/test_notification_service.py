import pytest
from sqlalchemy.exc import OperationalError

from fanout.core.errors import (
    EmptyTargetError,
    FanoutEntryNotFoundError,
    NotificationNotFoundError,
    PersistenceError,
    ValidationError,
)
from fanout.models.fanout_entry import FanoutEntry
from fanout.models.notification import Notification
from fanout.scheduler.dispatch_job import FAILED, PENDING
from fanout.services import ledger, subscriptions
from fanout.services.dispatch import DispatchReport
from fanout.services.transports import SendResult
from tests.helpers.fakes import DeferredExecutor

WEBPUSH_SUB = {"endpoint": "https://push/alice", "keys": {"p256dh": "p", "auth": "a"}}


def _entries(db, notification_id: int) -> list[FanoutEntry]:
    return db.query(FanoutEntry).filter(FanoutEntry.notification_id == notification_id).all()


def test_broadcast_writes_one_unread_entry_per_known_user(service, db) -> None:
    nid = service.send_broadcast("Maintenance", "Down at 2am")

    notification = db.get(Notification, nid)
    assert notification.title == "Maintenance"
    assert notification.sender_label == "System"
    assert sorted(e.recipient_id for e in _entries(db, nid)) == ["alice", "bob", "carol"]
    assert all(not e.is_read for e in _entries(db, nid))


def test_broadcast_with_no_known_users_creates_notification_without_entries(service, db, directory) -> None:
    directory.users.clear()
    nid = service.send_broadcast("Hello", "Nobody home")
    assert db.get(Notification, nid) is not None
    assert _entries(db, nid) == []


def test_targeted_deduplicates_recipients_and_keeps_sender_label(service, db) -> None:
    nid = service.send_targeted("Hi", "Just you two", ["alice", "bob", "alice"], sender_label="Support")

    assert sorted(e.recipient_id for e in _entries(db, nid)) == ["alice", "bob"]
    assert db.get(Notification, nid).sender_label == "Support"


def test_targeted_users_need_not_be_known(service, db) -> None:
    nid = service.send_targeted("Hi", "Welcome", ["someone-new"])
    assert [e.recipient_id for e in _entries(db, nid)] == ["someone-new"]


def test_empty_target_writes_nothing(service, db) -> None:
    with pytest.raises(EmptyTargetError):
        service.send_targeted("Hi", "Nobody", [])
    assert db.query(Notification).count() == 0


@pytest.mark.parametrize("title, body", [("", "body"), ("   ", "body"), ("title", ""), (None, "body")])
def test_blank_title_or_body_is_rejected(service, db, title, body) -> None:
    with pytest.raises(ValidationError):
        service.send_broadcast(title, body)
    assert db.query(Notification).count() == 0


def test_failed_entry_insert_leaves_no_notification(service, db, monkeypatch) -> None:
    def fail(*args, **kwargs):
        raise OperationalError("INSERT INTO fanout_entries", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ledger, "insert_entries", fail)

    with pytest.raises(PersistenceError):
        service.send_broadcast("Maintenance", "Down at 2am")
    assert db.query(Notification).count() == 0
    assert db.query(FanoutEntry).count() == 0


def test_send_dispatches_push_after_commit(service, runner, db, webpush_transport) -> None:
    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)

    nid = service.send_targeted("Hi", "Push me", ["alice"])

    assert [t.recipient_id for t in webpush_transport.sent] == ["alice"]
    report = runner.report_for(nid)
    assert isinstance(report, DispatchReport)
    assert report.succeeded == 1


def test_push_failure_never_fails_the_send(service, runner, db, webpush_transport) -> None:
    webpush_transport.default = SendResult.transient("push service down", 503)
    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)

    nid = service.send_targeted("Hi", "Push me", ["alice"])

    assert ledger.unread_count_for(db, "alice") == 1
    assert runner.report_for(nid).succeeded == 0
    assert len(subscriptions.list_for(db, "alice")) == 1


def test_gone_endpoint_is_evicted_after_dispatch(service, db, webpush_transport) -> None:
    webpush_transport.results["https://push/alice"] = SendResult.permanent("gone", 410)
    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)

    service.send_targeted("Hi", "Push me", ["alice"])

    assert subscriptions.list_for(db, "alice") == []


def test_scheduling_failure_does_not_fail_the_send(service, runner, db) -> None:
    runner.shutdown()

    nid = service.send_broadcast("Maintenance", "Down at 2am")

    assert db.get(Notification, nid) is not None
    assert ledger.unread_count_for(db, "bob") == 1
    assert runner.report_for(nid) == FAILED


def test_dispatch_job_failure_is_recorded(service, runner, monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise RuntimeError("dispatcher bug")

    monkeypatch.setattr(runner._dispatcher, "dispatch", explode)

    nid = service.send_broadcast("Maintenance", "Down at 2am")

    assert runner.report_for(nid) == FAILED


def test_subscription_added_before_dispatch_runs_is_included(session_factory, registry, directory, db, webpush_transport) -> None:
    from fanout.api.deps import build_service

    executor = DeferredExecutor()
    service, runner = build_service(session_factory, registry=registry, directory=directory, executor=executor)

    nid = service.send_targeted("Hi", "Push me", ["alice"])
    assert runner.report_for(nid) == PENDING
    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)
    executor.run_all()

    assert [t.recipient_id for t in webpush_transport.sent] == ["alice"]
    assert runner.report_for(nid).succeeded == 1


def test_redispatch_sends_to_ledger_recipients(service, db, webpush_transport) -> None:
    nid = service.send_targeted("Hi", "Push me", ["alice", "bob"])
    assert webpush_transport.sent == []

    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)
    assert service.redispatch(nid) is True
    assert [t.notification_id for t in webpush_transport.sent] == [nid]


def test_redispatch_unknown_notification(service) -> None:
    with pytest.raises(NotificationNotFoundError):
        service.redispatch(404)


def test_dispatch_for_entry_targets_one_recipient(service, db, webpush_transport) -> None:
    nid = service.send_targeted("Hi", "Push me", ["alice", "bob"])
    subscriptions.upsert(db, "alice", "webpush", WEBPUSH_SUB)
    subscriptions.upsert(db, "bob", "webpush", {"endpoint": "https://push/bob", "keys": {"p256dh": "p", "auth": "a"}})

    assert service.dispatch_for_entry(nid, "bob") is True
    assert [t.recipient_id for t in webpush_transport.sent] == ["bob"]

    with pytest.raises(NotificationNotFoundError):
        service.dispatch_for_entry(nid + 1, "bob")
    with pytest.raises(ValidationError):
        service.dispatch_for_entry(nid, "  ")


def test_delete_notification_removes_every_entry(service, db) -> None:
    nid = service.send_broadcast("Oops", "Sent by mistake")
    keep = service.send_broadcast("Keep", "This one stays")

    service.delete_notification(nid)

    assert db.get(Notification, nid) is None
    assert _entries(db, nid) == []
    assert len(_entries(db, keep)) == 3
    with pytest.raises(NotificationNotFoundError):
        service.delete_notification(nid)


def test_dispatch_for_entry_requires_a_feed_entry(service, db, webpush_transport) -> None:
    nid = service.send_targeted("Hi", "Only alice", ["alice"])
    subscriptions.upsert(db, "mallory", "webpush", {"endpoint": "https://push/mallory", "keys": {"p256dh": "p", "auth": "a"}})

    with pytest.raises(FanoutEntryNotFoundError):
        service.dispatch_for_entry(nid, "mallory")
    assert webpush_transport.sent == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"title": "t" * 257},
        {"user_ids": ["u" * 65]},
        {"sender_label": "s" * 257},
    ],
)
def test_over_long_fields_are_validation_errors(service, db, kwargs) -> None:
    args = {"title": "Hi", "body": "b", "user_ids": ["alice"], **kwargs}
    with pytest.raises(ValidationError):
        service.send_targeted(**args)
    assert db.query(Notification).count() == 0


def test_title_at_column_width_is_accepted(service, db) -> None:
    nid = service.send_targeted("t" * 256, "b", ["alice"])
    assert len(db.get(Notification, nid).title) == 256
