"""Tests for the FastAPI admin surface — health, policies, blocked lists, unblock, purge."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from abuse_guard.errors import StoreUnavailable
from abuse_guard.main import create_app
from abuse_guard.store.memory import InMemoryAttemptStore
from conftest import HOUR_MS

BASE = "/admin/rate-limits"


@pytest.fixture
def app(store, clock):
    return create_app(store=store, clock=clock, configure_logging=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def limiters(app):
    return app.state.limiters


def _block_login(limiters, address="1.2.3.4", label="alice"):
    login = limiters.address("login")
    for _ in range(login.max_attempts):
        login.record_failed_attempt(address, label=label)


# =====================================================================
# Service endpoints
# =====================================================================

class TestServiceEndpoints:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "abuse-guard"
        assert "review" in body["policies"]

    def test_health_ok(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["checks"]["store"] == {"backend": "InMemoryAttemptStore", "status": "ok"}
        assert body["fail_open"] is False

    def test_health_degraded(self, clock):
        broken = MagicMock(spec=InMemoryAttemptStore)
        broken.ping.side_effect = StoreUnavailable("down")
        client = TestClient(create_app(store=broken, clock=clock, configure_logging=False))
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["fail_open"] is True


# =====================================================================
# Admin endpoints
# =====================================================================

class TestPolicies:

    def test_lists_shipped_policies(self, client):
        resp = client.get(f"{BASE}/policies")
        assert resp.status_code == 200
        by_name = {p["name"]: p for p in resp.json()}
        assert set(by_name) == {"login", "contact", "copyright", "ticket_check", "comment", "review"}
        assert by_name["contact"]["keyedBy"] == "address"
        assert by_name["copyright"]["maxAttempts"] == 2
        assert by_name["review"]["blockDurationMs"] == 24 * HOUR_MS


class TestBlocked:

    def test_lists_blocked_principals(self, client, limiters):
        _block_login(limiters)
        resp = client.get(f"{BASE}/login/blocked")
        assert resp.status_code == 200
        body = resp.json()
        assert body["policy"] == "login"
        assert body["count"] == 1
        item = body["items"][0]
        assert item["principal"] == "1.2.3.4"
        assert item["label"] == "alice"
        assert item["attemptCount"] == 10
        assert item["remainingTime"] == 24 * HOUR_MS
        assert item["blockedUntil"] is not None

    def test_empty_list(self, client):
        assert client.get(f"{BASE}/review/blocked").json() == {"policy": "review", "count": 0, "items": []}

    def test_unknown_policy(self, client):
        resp = client.get(f"{BASE}/nope/blocked")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Unknown rate-limit policy: nope"

    def test_store_failure_is_503(self, clock):
        broken = MagicMock(spec=InMemoryAttemptStore)
        broken.find_blocked.side_effect = StoreUnavailable("down")
        client = TestClient(create_app(store=broken, clock=clock, configure_logging=False))
        assert client.get(f"{BASE}/login/blocked").status_code == 503


class TestUnblock:

    def test_unblock_then_not_found(self, client, limiters):
        _block_login(limiters)
        resp = client.post(f"{BASE}/login/unblock/1.2.3.4")
        assert resp.status_code == 200
        assert resp.json() == {
            "message": "1.2.3.4 has been unblocked",
            "policy": "login",
            "principal": "1.2.3.4",
            "recordsReset": 1,
        }
        assert limiters.address("login").is_blocked("1.2.3.4").blocked is False

        again = client.post(f"{BASE}/login/unblock/1.2.3.4")
        assert again.status_code == 404

    def test_unblock_principal_policy(self, client, limiters):
        review = limiters.principal("review")
        for _ in range(5):
            review.record_attempt("u1")
        assert client.post(f"{BASE}/review/unblock/u1").status_code == 200
        assert review.is_rate_limited("u1").remaining_attempts == 5


class TestStatus:

    def test_principal_status(self, client, limiters):
        review = limiters.principal("review")
        review.record_attempt("u1")
        review.record_attempt("u1")
        body = client.get(f"{BASE}/review/status/u1").json()
        assert body["limited"] is False
        assert body["remainingAttempts"] == 3
        assert body["message"] is None

    def test_blocked_address_status(self, client, limiters, clock):
        _block_login(limiters)
        clock.advance(minutes=30)
        body = client.get(f"{BASE}/login/status/1.2.3.4").json()
        assert body["limited"] is True
        assert body["remainingAttempts"] == 0
        assert body["remainingTime"] == 23 * HOUR_MS + 30 * 60000
        assert body["message"] == "Limited for another 23 hours and 30 minutes"


class TestPurge:

    def test_purges_old_records(self, client, limiters, store, clock):
        _block_login(limiters)
        limiters.principal("review").record_attempt("u1")
        clock.advance(hours=12)
        limiters.principal("comment").record_attempt("u1")
        clock.advance(hours=13)

        resp = client.post(f"{BASE}/purge")
        assert resp.status_code == 200
        assert resp.json()["deleted"] == 2
        assert len(store) == 1

    def test_rejects_non_positive_window(self, client):
        assert client.post(f"{BASE}/purge", params={"older_than_hours": 0}).status_code == 422


# =====================================================================
# Access control
# =====================================================================

class TestAdminAccess:

    @patch("abuse_guard.config.ADMIN_API_KEY", "s3cret")
    def test_api_key_enforced(self, client):
        assert client.get(f"{BASE}/policies").status_code == 403
        assert client.get(f"{BASE}/policies", headers={"X-API-Key": "wrong"}).status_code == 403
        assert client.get(f"{BASE}/policies", headers={"X-API-Key": "s3cret"}).status_code == 200

    def test_open_when_no_key_configured(self, client):
        with patch("abuse_guard.config.ADMIN_API_KEY", None):
            assert client.get(f"{BASE}/policies").status_code == 200

    def test_admin_routes_are_throttled(self, client):
        with patch("abuse_guard.config.ADMIN_API_KEY", None):
            codes = [client.get(f"{BASE}/policies").status_code for _ in range(31)]
        assert codes[:30] == [200] * 30
        assert codes[30] == 429
