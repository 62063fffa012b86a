import os

os.environ["ENV"] = "test"
os.environ["TEST_DATABASE_URL"] = "sqlite://"
os.environ.pop("RELAY_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from app.db import Base, db_manager, get_db
import app.models  # noqa: F401
from app.main import create_app
from app.routers.utils.dependencies import get_adapter_registry

pytest_plugins = [
    "tests.fixtures.relay_fixtures",
    "tests.fixtures.platform_fixtures",
]


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    db_manager.configure(engine)
    yield engine
    db_manager.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db, registry):
    """Client with db and adapter registry overrides."""
    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_adapter_registry] = lambda: registry
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
