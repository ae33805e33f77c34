"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read once at import time; point the app at SQLite before that
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "test")

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.models import Base, MenuItem, Store, Table
from shared.config.constants import TableStatus
from shared.infrastructure.db import build_engine, get_db
from shared.infrastructure.events import get_event_circuit_breaker
from shared.security.auth import sign_staff_token
from shared.security.rate_limit import limiter


# SQLite in-memory database shared by every session of a test
engine = build_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


BIBIMBAP_OPTIONS = [
    {
        "id": "size",
        "name": "Size",
        "min_select": 1,
        "max_select": 1,
        "values": [
            {"id": "regular", "label": "Regular", "price_delta": 0},
            {"id": "large", "label": "Large", "price_delta": 2000},
        ],
    },
    {
        "id": "extras",
        "name": "Extras",
        "min_select": 0,
        "max_select": 2,
        "values": [
            {"id": "egg", "label": "Fried egg", "price_delta": 1000},
            {"id": "tofu", "label": "Tofu", "price_delta": 1500},
            {"id": "kimchi", "label": "Kimchi", "price_delta": 500},
        ],
    },
]

REGULAR = [{"group_id": "size", "value_id": "regular"}]


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    """The publisher circuit breaker is process-global."""
    get_event_circuit_breaker().reset()
    yield
    get_event_circuit_breaker().reset()


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    """
    Redis stand-in for the broadcast path. Every publish is recorded as
    (channel, decoded event) in ``fake_redis.published``.
    """
    redis = MagicMock()
    redis.published = []

    async def _publish(channel, message):
        redis.published.append((channel, json.loads(message)))
        return 1

    redis.publish = AsyncMock(side_effect=_publish)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture(scope="function")
def client(db_session, fake_redis):
    """
    Create a test client with database session override and a fake Redis
    behind the post-commit broadcasts.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False

    with patch(
        "rest_api.services.events.broadcast.get_redis_pool",
        AsyncMock(return_value=fake_redis),
    ):
        with TestClient(app) as test_client:
            yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


def make_store(db_session, **settings) -> Store:
    store = Store(
        name="Test Bistro",
        currency="KRW",
        settings={"tax_rate": 0.1, "tax_included": True, **settings},
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def seed_store(db_session):
    """Store with 10% included tax and default settings otherwise."""
    return make_store(db_session)


@pytest.fixture
def seed_table(db_session, seed_store):
    table = Table(
        store_id=seed_store.id,
        label="T1",
        short_code="ABC234",
        status=TableStatus.ACTIVE,
    )
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture
def seed_menu(db_session, seed_store):
    """
    Menu keyed by short name:
    - bibimbap: 9000, required size (large +2000), up to 2 extras
    - pancake: 12000, no options
    - sorbet: sold out
    """
    items = {
        "bibimbap": MenuItem(
            store_id=seed_store.id,
            name="Bibimbap",
            base_price=9000,
            option_groups=BIBIMBAP_OPTIONS,
        ),
        "pancake": MenuItem(store_id=seed_store.id, name="Kimchi Pancake", base_price=12000),
        "sorbet": MenuItem(store_id=seed_store.id, name="Sorbet", base_price=5000, is_sold_out=True),
    }
    db_session.add_all(items.values())
    db_session.commit()
    return items


@pytest.fixture
def staff_headers(seed_store):
    """Build an Authorization header for a staff member of the seed store."""
    def _headers(*roles: str, store_id: str | None = None, user_id: str = "staff-1") -> dict[str, str]:
        token = sign_staff_token(
            user_id=user_id,
            store_id=store_id or seed_store.id,
            roles=list(roles) or ["WAITER"],
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def join_table(client, seed_table):
    """Join the seed table through the API; returns the JoinResponse JSON."""
    def _join(nickname: str, device_fingerprint: str | None = None) -> dict:
        body = {"short_code": seed_table.short_code, "nickname": nickname}
        if device_fingerprint:
            body["device_fingerprint"] = device_fingerprint
        response = client.post("/api/sessions/join", json=body)
        assert response.status_code == 200, response.text
        return response.json()
    return _join


def session_headers(joined: dict) -> dict[str, str]:
    return {"X-Session-Token": joined["session_token"]}
