import os

from cryptography.fernet import Fernet

# Must run before app.config is imported
os.environ["ENV"] = "test"
os.environ.setdefault("CREDENTIAL_MASTER_KEY", Fernet.generate_key().decode())
os.environ.pop("ROLLBAR_ACCESS_TOKEN", None)
os.environ.pop("META_APP_SECRET", None)
os.environ.pop("VOICEFLOW_SIMULATE", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: E402,F401  (registers tables on Base.metadata)
from app.core.app_state import state  # noqa: E402
from app.db import db_manager, get_db  # noqa: E402
from app.main import create_app  # noqa: E402

pytest_plugins = [
    "tests.fixtures.conversation_fixtures",
    "tests.fixtures.integration_fixtures",
    "tests.fixtures.http_fixtures",
]


@pytest.fixture(scope="function", autouse=True)
def setup_database():
    """Create all tables before each test and drop them afterwards."""
    db_manager.create_all()
    yield
    db_manager.drop_all()


@pytest.fixture(scope="function", autouse=True)
def reset_app_state():
    """Process-wide cache and clients must not leak between tests."""
    state.reset()
    yield
    state.reset()


@pytest.fixture(scope="function")
def db(setup_database):
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db):
    """TestClient with get_db bound to the test session."""
    app = create_app(testing=True)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
