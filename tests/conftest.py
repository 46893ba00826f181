import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.heartbeat_store import HeartbeatStore
from app.services.query import QueryService

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def store():
    store = HeartbeatStore.from_url("sqlite://")
    yield store
    store.close()


@pytest.fixture
def queries(store):
    return QueryService(store)


@pytest.fixture
def settings():
    return Settings(_env_file=None, DATABASE_URL="sqlite://", ADMIN_API_KEY=ADMIN_KEY)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def admin_headers():
    return {"x-api-key": ADMIN_KEY}
