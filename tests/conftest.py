"""Shared test setup: a fresh in-memory database per test and an API client."""

import os

os.environ["ENV"] = "test"
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")

from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.models  # noqa: E402,F401  registers tables on Base.metadata
from app.config import get_settings  # noqa: E402
from app.db import Base, build_engine, get_db  # noqa: E402
from app.main import create_app  # noqa: E402

pytest_plugins = [
    "tests.fixtures.clock_fixtures",
    "tests.fixtures.user_fixtures",
    "tests.fixtures.conversation_fixtures",
    "tests.fixtures.client_fixtures",
]


@pytest.fixture(scope="function")
def engine():
    engine = build_engine(get_settings().database_url)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def notify_task():
    """The Celery fan-out task as seen by SendMessageCommand; never reaches a broker."""
    with patch(
        "app.commands.messages.send_message_command.notify_new_message_task"
    ) as task:
        yield task


@pytest.fixture(scope="function")
def client(db):
    """API client sharing the test session."""
    application = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    application.dependency_overrides[get_db] = override_get_db
    with TestClient(application) as c:
        yield c
    application.dependency_overrides.clear()
