"""
tests/test_metrics_router.py

HTTP surface of the metric reports, with the service dependency swapped
for one backed by an in-memory source.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.connectors.base import BillingAPIError
from app.domain.billing import SubscriptionStatus
from app.main import create_app
from app.services.metrics_service import MetricsService, get_metrics_service


@pytest.fixture()
def app_env(monkeypatch) -> None:
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_router")
    monkeypatch.delenv("STRIPE_PAGE_SIZE", raising=False)


@pytest.fixture()
def source(make_source, make_subscription, make_event, now):
    return make_source(
        subscriptions=[
            make_subscription(id="steady"),
            make_subscription(id="fresh", created_at=now - timedelta(days=1)),
            make_subscription(
                id="trial",
                status=SubscriptionStatus.TRIALING,
                trial_end=now + timedelta(hours=12),
            ),
        ],
        events=[make_event(amount=2500, previous_amount=2000)],
    )


@pytest.fixture()
def client(app_env, source, now):
    app = create_app()
    app.dependency_overrides[get_metrics_service] = lambda: MetricsService(source=source, clock=lambda: now)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class _FailingSource:
    def __init__(self, error: Exception) -> None:
        self._error = error

    def fetch_subscriptions(self, statuses=()):
        raise self._error

    def fetch_canceled_subscriptions(self, since_days, *, now=None):
        raise self._error

    def fetch_recent_events(self, days, *, now=None):
        raise self._error

    def fetch_failed_payments(self, days, *, now=None):
        raise self._error


def _client_failing_with(error: Exception) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_metrics_service] = lambda: MetricsService(source=_FailingSource(error))
    return TestClient(app)


class TestStartup:
    def test_missing_key_fails_fast(self, monkeypatch) -> None:
        monkeypatch.setenv("STRIPE_SECRET_KEY", "")
        with pytest.raises(RuntimeError, match="STRIPE_SECRET_KEY"):
            create_app()

    def test_publishable_key_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("STRIPE_SECRET_KEY", "pk_test_nope")
        with pytest.raises(RuntimeError, match="invalid format"):
            create_app()

    def test_bad_page_size_reported(self, monkeypatch) -> None:
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_ok")
        monkeypatch.setenv("STRIPE_PAGE_SIZE", "lots")
        with pytest.raises(RuntimeError, match="STRIPE_PAGE_SIZE"):
            create_app()

    def test_health(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestReports:
    def test_mrr(self, client) -> None:
        response = client.get("/metrics/mrr")
        assert response.status_code == 200
        body = response.json()
        assert body["metric"] == "mrr"
        assert body["currency"] == "usd"
        assert body["data"]["total"] == 4000
        assert body["data"]["status_breakdown"]["trialing"] == 1
        assert body["report"].startswith("# Monthly Recurring Revenue (MRR)")

    def test_churn_with_period(self, client) -> None:
        body = client.get("/metrics/churn", params={"period_days": 14}).json()
        assert body["data"]["period_days"] == 14
        assert body["data"]["customer_churn_rate"] == 0.0

    @pytest.mark.parametrize(
        "path, params",
        [
            ("/metrics/churn", {"period_days": 0}),
            ("/metrics/churn", {"period_days": 366}),
            ("/metrics/subscribers", {"period_days": 0}),
            ("/metrics/recent-changes", {"days": 91}),
            ("/metrics/mrr-movement", {"period_days": 91}),
            ("/metrics/failed-payments", {"days": 0}),
        ],
    )
    def test_out_of_range_windows_rejected(self, client, path, params) -> None:
        assert client.get(path, params=params).status_code == 422

    def test_revenue_by_plan(self, client) -> None:
        body = client.get("/metrics/revenue-by-plan").json()
        assert body["data"]["total"] == 4000
        assert body["data"]["plans"][0]["plan_name"] == "Basic Plan"
        assert "| Plan |" in body["report"]

    def test_subscribers(self, client) -> None:
        body = client.get("/metrics/subscribers", params={"period_days": 7}).json()
        assert body["data"]["total_active"] == 2
        assert body["data"]["trialing"] == 1
        assert body["data"]["new_this_period"] == 1

    def test_recent_changes(self, client) -> None:
        body = client.get("/metrics/recent-changes").json()
        assert body["data"]["summary"]["upgraded_count"] == 1
        assert body["data"]["changes"][0]["type"] == "upgraded"

    def test_mrr_movement(self, client) -> None:
        body = client.get("/metrics/mrr-movement").json()
        assert body["data"]["new"] == 2000
        assert body["data"]["expansion"] == 500

    def test_dashboard_infinite_quick_ratio(self, client) -> None:
        body = client.get("/metrics/dashboard").json()
        assert body["data"]["quick_ratio"] is None
        assert body["data"]["quick_ratio_no_churn"] is True
        assert body["data"]["expiring_trials"][0]["subscription_id"] == "trial"
        assert "∞" in body["report"]

    def test_failed_payments(self, client) -> None:
        body = client.get("/metrics/failed-payments").json()
        assert body["data"]["total_at_risk"] == 0
        assert body["data"]["days"] == 30


class TestErrors:
    def test_mixed_currency_is_422(self, app_env, make_source, make_subscription) -> None:
        source = make_source(subscriptions=[make_subscription(id="a"), make_subscription(id="b", currency="eur")])
        app = create_app()
        app.dependency_overrides[get_metrics_service] = lambda: MetricsService(source=source)
        response = TestClient(app).get("/metrics/mrr")
        assert response.status_code == 422
        assert response.json()["detail"] == "Mixed currencies not supported. Found: EUR, USD"

    @pytest.mark.parametrize(
        "kind, expected_status",
        [
            ("authentication", 401),
            ("permission", 403),
            ("rate_limit", 429),
            ("api_error", 502),
            ("api_connection", 502),
        ],
    )
    def test_billing_errors_mapped(self, app_env, kind, expected_status) -> None:
        client = _client_failing_with(BillingAPIError(kind, f"{kind} failure"))
        response = client.get("/metrics/mrr")
        assert response.status_code == expected_status
        assert response.json()["detail"] == f"{kind} failure"
