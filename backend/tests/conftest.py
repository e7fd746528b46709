import os

# Configure test environment before any fanout import builds settings/engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
for _key in ("VAPID_PRIVATE_KEY", "APNS_KEY_ID", "ONESIGNAL_APP_ID"):
    os.environ.pop(_key, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from fanout.api.deps import build_service, get_notification_service
from fanout.db.base import Base
from fanout.db.session import get_db, make_engine
from fanout.models import Profile, Subscription  # noqa: F401  (register tables)
from fanout.services.dispatch import Dispatcher
from fanout.services.transports import AdapterRegistry
from tests.helpers.fakes import FakeDirectory, FakeTransport, InlineExecutor


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'fanout.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def webpush_transport():
    return FakeTransport("webpush")


@pytest.fixture
def registry(webpush_transport):
    reg = AdapterRegistry()
    reg.register("webpush", webpush_transport)
    return reg


@pytest.fixture
def directory():
    return FakeDirectory({"alice", "bob", "carol"})


@pytest.fixture
def executor():
    return InlineExecutor()


@pytest.fixture
def service_and_runner(session_factory, registry, directory, executor):
    return build_service(session_factory, registry=registry, directory=directory, executor=executor)


@pytest.fixture
def service(service_and_runner):
    return service_and_runner[0]


@pytest.fixture
def runner(service_and_runner):
    return service_and_runner[1]


@pytest.fixture
def dispatcher(registry):
    return Dispatcher(registry, max_workers=4, timeout_seconds=5)


@pytest.fixture
def client(session_factory, service):
    from fanout.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notification_service] = lambda: service
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
