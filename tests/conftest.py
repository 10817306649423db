"""
Shared fixtures: a throwaway SQLite database per test, auth headers and
a booking factory.
"""
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from mekacash.api.app import app
from mekacash.api.dependencies import get_db, get_notification_dispatcher
from mekacash.lib.config_flags import reset_all_configs
from mekacash.lib.db import build_engine, drop_db, init_db
from mekacash.lib.jwt import create_access_token
from mekacash.models.booking_document import PaymentMethod
from mekacash.services import booking_lifecycle
from mekacash.services.notification_service import NotificationDispatcher


@pytest.fixture(autouse=True)
def reset_flags():
    reset_all_configs()
    yield
    reset_all_configs()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate sessions use separate connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'mekacash.db'}")
    init_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_booking():
    """Build an in-memory pending booking; keyword arguments override defaults."""

    def _make(**overrides):
        fields = dict(
            requester="cust-1",
            provider="prov-1",
            scheduled_date=date.today() + timedelta(days=1),
            scheduled_time="14:30",
            estimated_duration=60,
            base_price=50.0,
            payment_method=PaymentMethod.CARD,
        )
        fields.update(overrides)
        return booking_lifecycle.create_booking(**fields)

    return _make


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock(spec=NotificationDispatcher)
    dispatcher.dispatch = AsyncMock(return_value=[])
    return dispatcher


@pytest.fixture
def client(session_factory, mock_dispatcher):
    """Test client bound to the per-test database with delivery mocked out."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: mock_dispatcher

    yield TestClient(app)

    app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str = "customer") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def customer_headers():
    return auth_headers("cust-1", "customer")


@pytest.fixture
def provider_headers():
    return auth_headers("prov-1", "provider")


@pytest.fixture
def admin_headers():
    return auth_headers("admin-1", "admin")


@pytest.fixture
def outsider_headers():
    return auth_headers("stranger-9", "customer")


@pytest.fixture
def make_headers():
    return auth_headers
