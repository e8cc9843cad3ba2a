# backend/conftest.py
import os

# Settings are read at import time; test defaults must be in place first
os.environ.setdefault("ENV", "test")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-32b")
os.environ.setdefault("ADMIN_KEY", "test-admin-key")
os.environ.setdefault("BASE_URL", "https://app.confera.test")

import pytest
from sqlalchemy import delete

from backend.core.admin_auth import AdminActor
from backend.core.database import create_all_tables, get_db_session, metadata
from backend.core.supabase_auth import create_test_jwt
from backend.features.billing.service import set_payment_gateway_for_tests
from backend.features.calls.service import set_call_provider_for_tests
from backend.features.identity.service import set_identity_provider_for_tests
from backend.tests.mocks import WEBHOOK_SECRET, FakeCallProvider, FakeGateway, InMemoryIdentityProvider


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Create all tables once in the shared in-memory database."""
    create_all_tables()
    yield


@pytest.fixture(scope="function", autouse=True)
def clean_state():
    """Empty every table and drop collaborator overrides around each test."""
    with get_db_session() as session:
        for table in reversed(metadata.sorted_tables):
            session.execute(delete(table))
    yield
    set_identity_provider_for_tests(None)
    set_payment_gateway_for_tests(None)
    set_call_provider_for_tests(None)


@pytest.fixture
def identity():
    provider = InMemoryIdentityProvider()
    set_identity_provider_for_tests(provider)
    return provider


@pytest.fixture
def gateway():
    fake = FakeGateway(webhook_secret=WEBHOOK_SECRET)
    set_payment_gateway_for_tests(fake)
    return fake


@pytest.fixture
def calls():
    provider = FakeCallProvider()
    set_call_provider_for_tests(provider)
    return provider


@pytest.fixture
def admin_actor():
    return AdminActor(
        actor_type="supabase",
        actor_id="admin_1",
        actor_email="admin@confera.test",
        actor_display="Admin",
        auth_mechanism="supabase_jwt",
    )


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from backend.main import app

    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_test_jwt(sub='admin_1', email='admin@confera.test', role='admin')}"}


@pytest.fixture
def user_headers():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_test_jwt(sub=user_id, email=f'{user_id}@confera.test')}"}
    return _headers
