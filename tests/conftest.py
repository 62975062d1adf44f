import os

os.environ["ENV"] = "test"
os.environ["EMAIL_ENABLED"] = "false"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

from contextlib import contextmanager  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.models  # noqa: E402,F401
from app.auth.dependencies import get_current_principal, get_identity_client  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.db import Base, build_engine, get_db  # noqa: E402
from app.realtime.local import LocalBroadcastHub  # noqa: E402
from app.routers.utils.dependencies import (  # noqa: E402
    get_email_adapter,
    get_session_scope,
    get_transport,
)

pytest_plugins = [
    "tests.fixtures.order_fixtures",
    "tests.fixtures.message_fixtures",
    "tests.fixtures.chat_fixtures",
]


@pytest.fixture(scope="session")
def engine():
    engine = build_engine(get_settings().database_url)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def session_scope(session_factory):
    """Fresh session per call, like db_manager.db_session."""

    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    return scope


@pytest.fixture(scope="function")
def hub():
    return LocalBroadcastHub()


@pytest.fixture(scope="function")
def current_principal(customer):
    """Mutable holder for the principal the test client authenticates as."""
    return {"principal": customer}


@pytest.fixture(scope="function")
def act_as(current_principal):
    def switch(principal):
        current_principal["principal"] = principal

    return switch


@pytest.fixture(scope="function")
def client(db, hub, email_adapter, current_principal, session_scope, identity_client):
    from app.main import create_app

    app = create_app(testing=True)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = lambda: current_principal["principal"]
    app.dependency_overrides[get_transport] = lambda: hub
    app.dependency_overrides[get_email_adapter] = lambda: email_adapter
    app.dependency_overrides[get_session_scope] = lambda: session_scope
    app.dependency_overrides[get_identity_client] = lambda: identity_client

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
