"""
Tests for GET /api/user/stats, /api/user/credits and /api/user/history.
"""
import logging
from datetime import datetime, timezone, timedelta

import pytest
from fastapi.testclient import TestClient

from resume_ninja.api.stats import get_ledger_store, get_tier_limits
from resume_ninja.core.auth import get_identity_provider
from resume_ninja.core.errors import StoreUnavailable
from resume_ninja.features.usage.aggregator import current_period
from resume_ninja.main import app
from resume_ninja.models.tier import Tier
from resume_ninja.models.user import Identity
from resume_ninja.tests.mocks import FailingLedgerStore, FakeIdentityProvider, make_event


def _this_period(offset_hours: int = 1) -> datetime:
    start, _ = current_period()
    return start + timedelta(hours=offset_hours)


def _override(provider, store, limits=None):
    from resume_ninja.models.tier import default_tier_limits
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_ledger_store] = lambda: store
    app.dependency_overrides[get_tier_limits] = lambda: limits or default_tier_limits(free=3, pro=50)
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


class TestStatsEndpoint:

    def test_unauthenticated_returns_401_without_ledger_access(self, api_client, spy_ledger):
        client, set_identity = api_client
        set_identity(None)

        resp = client.get("/api/user/stats")

        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert spy_ledger.fetch_calls == []

    def test_identity_resolution_error_returns_401(self, spy_ledger):
        provider = FakeIdentityProvider(error=RuntimeError("token parse blew up"))
        client = _override(provider, spy_ledger)

        resp = client.get("/api/user/stats")

        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert spy_ledger.fetch_calls == []

    def test_new_user_gets_empty_summary(self, api_client):
        client, set_identity = api_client
        set_identity(Identity(user_id="u-new", tier=Tier.FREE))

        resp = client.get("/api/user/stats")

        assert resp.status_code == 200
        assert resp.json() == {
            "totalEvents": 0,
            "eventsThisPeriod": 0,
            "creditsRemaining": 3,
            "isLowBalance": False,
            "averageScore": None,
        }

    def test_summary_combines_aggregate_and_policy(self, api_client, ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="u1", tier=Tier.FREE))
        ledger.append_event(make_event(user_id="u1", occurred_at=_this_period(1), score=80))
        ledger.append_event(make_event(user_id="u1", occurred_at=_this_period(2), score=81))
        # Previous period: counts toward lifetime totals only
        start, _ = current_period()
        ledger.append_event(make_event(user_id="u1", occurred_at=start - timedelta(days=3), score=None))

        body = client.get("/api/user/stats").json()

        assert body["totalEvents"] == 3
        assert body["eventsThisPeriod"] == 2
        assert body["creditsRemaining"] == 1
        assert body["isLowBalance"] is True
        assert body["averageScore"] == 81

    def test_only_callers_events_are_read(self, api_client, ledger, spy_ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="alice", tier=Tier.PRO))
        ledger.append_event(make_event(user_id="alice", occurred_at=_this_period()))
        ledger.append_event(make_event(user_id="mallory", occurred_at=_this_period()))

        resp = client.get("/api/user/stats", params={"userId": "mallory"})

        assert resp.json()["totalEvents"] == 1
        assert [call[0] for call in spy_ledger.fetch_calls] == ["alice"]

    def test_enterprise_reports_unlimited(self, api_client, ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="corp", tier=Tier.ENTERPRISE))
        for i in range(5):
            ledger.append_event(make_event(user_id="corp", occurred_at=_this_period(i + 1)))

        body = client.get("/api/user/stats").json()

        assert body["creditsRemaining"] == "unlimited"
        assert body["isLowBalance"] is False

    def test_exhausted_free_user_floors_at_zero(self, api_client, ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="u2", tier=Tier.FREE))
        for i in range(4):
            ledger.append_event(make_event(user_id="u2", occurred_at=_this_period(i + 1)))

        body = client.get("/api/user/stats").json()

        assert body["creditsRemaining"] == 0
        assert body["isLowBalance"] is True

    def test_store_failure_returns_generic_500(self, caplog):
        store = FailingLedgerStore()
        client = _override(FakeIdentityProvider(Identity(user_id="u3", tier=Tier.FREE)), store)

        with caplog.at_level(logging.ERROR, logger="resume_ninja"):
            resp = client.get("/api/user/stats")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "hunter2" not in resp.text
        assert "connection refused" not in resp.text
        assert store.fetch_calls == 1
        assert any(r.getMessage() == "usage.stats.failed" for r in caplog.records)

    def test_unexpected_store_exception_returns_generic_500(self):
        store = FailingLedgerStore(error=KeyError("row 17 malformed"))
        client = _override(FakeIdentityProvider(Identity(user_id="u4", tier=Tier.PRO)), store)

        resp = client.get("/api/user/stats")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "malformed" not in resp.text

    def test_identity_backend_outage_returns_500(self, spy_ledger):
        provider = FakeIdentityProvider(error=StoreUnavailable("profiles table unreachable"))
        client = _override(provider, spy_ledger)

        resp = client.get("/api/user/stats")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert spy_ledger.fetch_calls == []

    def test_missing_tier_limit_returns_500(self, spy_ledger):
        from resume_ninja.models.tier import UNLIMITED
        provider = FakeIdentityProvider(Identity(user_id="u5", tier=Tier.PRO))
        client = _override(provider, spy_ledger, limits={Tier.FREE: 3, Tier.ENTERPRISE: UNLIMITED})

        resp = client.get("/api/user/stats")

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_response_carries_request_id(self, api_client):
        client, set_identity = api_client
        set_identity(None)

        resp = client.get("/api/user/stats", headers={"X-Request-Id": "rid-42"})

        assert resp.headers.get("x-request-id") == "rid-42"


class TestCreditsEndpoint:

    def test_credits_for_pro_user(self, api_client, ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="p1", tier=Tier.PRO))
        ledger.append_event(make_event(user_id="p1", occurred_at=_this_period()))

        resp = client.get("/api/user/credits")

        assert resp.status_code == 200
        assert resp.json() == {"creditsRemaining": 49, "tier": "pro", "isLowBalance": False}

    def test_credits_for_enterprise_user(self, api_client):
        client, set_identity = api_client
        set_identity(Identity(user_id="e1", tier=Tier.ENTERPRISE))

        body = client.get("/api/user/credits").json()

        assert body == {"creditsRemaining": "unlimited", "tier": "enterprise", "isLowBalance": False}

    def test_credits_requires_auth(self, api_client):
        client, set_identity = api_client
        set_identity(None)

        assert client.get("/api/user/credits").status_code == 401


class TestHistoryEndpoint:

    def test_history_is_newest_first_and_paginated(self, api_client, ledger):
        client, set_identity = api_client
        set_identity(Identity(user_id="h1", tier=Tier.FREE))
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for i in range(5):
            ledger.append_event(make_event(user_id="h1", occurred_at=base + timedelta(days=i), score=60 + i))

        resp = client.get("/api/user/history", params={"limit": 2, "offset": 1})

        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 5
        assert body["limit"] == 2
        assert body["offset"] == 1
        assert [e["scoreValue"] for e in body["events"]] == [63, 62]
        assert body["events"][0]["kind"] == "analysis"

    def test_history_rejects_bad_limit(self, api_client):
        client, set_identity = api_client
        set_identity(Identity(user_id="h2", tier=Tier.FREE))

        resp = client.get("/api/user/history", params={"limit": 0})

        assert resp.status_code == 400
        assert "limit" in resp.json()["error"]

    def test_history_rejects_non_integer_offset(self, api_client):
        client, set_identity = api_client
        set_identity(Identity(user_id="h3", tier=Tier.FREE))

        resp = client.get("/api/user/history", params={"offset": "abc"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request parameters"}

    def test_history_requires_auth(self, api_client, spy_ledger):
        client, set_identity = api_client
        set_identity(None)

        assert client.get("/api/user/history").status_code == 401
        assert spy_ledger.fetch_calls == []


class TestStatsEndToEnd:
    """Real identity provider and SQL ledger against SQLite; no overrides."""

    SECRET = "end-to-end-secret-with-at-least-32-characters"

    def _token(self, sub):
        import time
        import jwt
        claims = {"sub": sub, "aud": "authenticated", "exp": int(time.time()) + 600}
        return jwt.encode(claims, self.SECRET, algorithm="HS256")

    def test_pro_user_stats_from_database(self, sqlite_db, monkeypatch):
        from sqlalchemy import insert
        from resume_ninja.core.config import settings
        from resume_ninja.core.database import get_db_session, profiles
        from resume_ninja.features.usage.store import SqlLedgerStore

        monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", self.SECRET)
        with get_db_session() as session:
            session.execute(insert(profiles).values(id="db-user", subscription_tier="pro"))

        store = SqlLedgerStore()
        store.append_event(make_event(user_id="db-user", occurred_at=_this_period(1), score=70))
        store.append_event(make_event(user_id="db-user", occurred_at=_this_period(2), score=None))
        store.append_event(make_event(user_id="someone-else", occurred_at=_this_period(3), score=10))

        client = TestClient(app)
        resp = client.get("/api/user/stats", headers={"Authorization": f"Bearer {self._token('db-user')}"})

        assert resp.status_code == 200
        assert resp.json() == {
            "totalEvents": 2,
            "eventsThisPeriod": 2,
            "creditsRemaining": 48,
            "isLowBalance": False,
            "averageScore": 70,
        }

    def test_bad_token_is_unauthorized(self, sqlite_db, monkeypatch):
        from resume_ninja.core.config import settings

        monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", self.SECRET)
        client = TestClient(app)

        resp = client.get("/api/user/stats", headers={"Authorization": "Bearer not-a-jwt"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}


def test_unconfigured_identity_backend_is_500_not_401(monkeypatch):
    def not_configured():
        raise ValueError("DATABASE_URL is not configured")

    monkeypatch.setattr("resume_ninja.core.auth.ensure_schema", not_configured)
    client = TestClient(app)

    resp = client.get("/api/user/stats", headers={"X-User-Id": "someone"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}
