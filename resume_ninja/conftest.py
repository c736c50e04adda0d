# resume_ninja/conftest.py
import os
from datetime import datetime, timezone

import pytest

# Must be set before settings are first imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from resume_ninja.features.usage.store import InMemoryLedgerStore
from resume_ninja.models.tier import default_tier_limits
from resume_ninja.tests.mocks import FakeIdentityProvider, SpyLedgerStore


@pytest.fixture
def now():
    """Fixed clock inside a mid-month billing period."""
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tier_limits():
    return default_tier_limits(free=3, pro=50)


@pytest.fixture
def ledger():
    return InMemoryLedgerStore()


@pytest.fixture
def spy_ledger(ledger):
    return SpyLedgerStore(ledger)


@pytest.fixture(scope="function")
def sqlite_db():
    """
    Point the database layer at a fresh in-memory SQLite database.

    Tables are created up front and the engine disposed afterwards.
    """
    from resume_ninja.core.database import init_engine, create_all_tables, dispose_engine

    init_engine("sqlite://")
    create_all_tables()
    yield
    dispose_engine()


@pytest.fixture
def api_client(spy_ledger, tier_limits):
    """
    TestClient with collaborators injected through dependency overrides.

    Yields (client, set_identity) where set_identity(identity_or_None)
    controls who the caller is.
    """
    from fastapi.testclient import TestClient

    from resume_ninja.main import app
    from resume_ninja.core.auth import get_identity_provider
    from resume_ninja.api.stats import get_ledger_store, get_tier_limits

    provider = FakeIdentityProvider(None)
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_ledger_store] = lambda: spy_ledger
    app.dependency_overrides[get_tier_limits] = lambda: tier_limits

    def set_identity(identity):
        provider.identity = identity

    try:
        yield TestClient(app), set_identity
    finally:
        app.dependency_overrides.clear()
