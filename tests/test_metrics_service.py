"""
tests/test_metrics_service.py

MetricsService against an in-memory data source with a pinned clock.
"""

from __future__ import annotations

import math
from datetime import timedelta

import pytest

from app.config import MetricsSettings
from app.domain.billing import EventType, FailedPayment, SubscriptionStatus
from app.services.metrics_service import MetricsService
from kpi.currency import MixedCurrencyError


@pytest.fixture()
def source(make_source, make_subscription, make_event, now):
    return make_source(
        subscriptions=[
            make_subscription(id="steady"),
            make_subscription(id="fresh", created_at=now - timedelta(days=2)),
            make_subscription(
                id="trial",
                status=SubscriptionStatus.TRIALING,
                trial_end=now + timedelta(days=1),
            ),
            make_subscription(
                id="gone",
                status=SubscriptionStatus.CANCELED,
                created_at=now - timedelta(days=200),
                canceled_at=now - timedelta(days=3),
            ),
        ],
        events=[
            make_event(id="evt_up", amount=3000, previous_amount=2000),
            make_event(id="evt_new", type=EventType.SUBSCRIPTION_CREATED, created=now - timedelta(days=2)),
        ],
        failed_payments=[
            FailedPayment(
                invoice_id="in_1",
                customer_email="late@example.com",
                amount=2000,
                currency="usd",
                failure_reason="Card declined",
                attempt_count=1,
            )
        ],
    )


@pytest.fixture()
def service(source, now) -> MetricsService:
    return MetricsService(source=source, settings=MetricsSettings(), clock=lambda: now)


class TestSnapshot:
    def test_only_requested_collections_fetched(self, service, source) -> None:
        snapshot = service.take_snapshot()
        assert snapshot.canceled_subscriptions == []
        assert snapshot.events == []
        assert [call[0] for call in source.calls] == ["subscriptions"]

    def test_windows_share_the_clock(self, service, source, now) -> None:
        snapshot = service.take_snapshot(canceled_days=7, event_days=7, failed_payment_days=30)
        assert snapshot.taken_at == now
        assert {call[0] for call in source.calls} == {"subscriptions", "canceled", "events", "failed_payments"}
        assert all(call[2] == now for call in source.calls if call[0] != "subscriptions")


class TestMetrics:
    def test_mrr(self, service) -> None:
        result = service.mrr()
        assert result.total == 4000
        assert result.status_breakdown.trialing == 1

    def test_churn_uses_default_period(self, service, source) -> None:
        result = service.churn()
        assert result.period_days == 30
        assert result.churned_count == 1
        assert result.starting_count == 1
        assert ("canceled", 30) in [(call[0], call[1]) for call in source.calls]

    def test_churn_zero_period_is_one_day(self, service, source) -> None:
        result = service.churn(0)
        assert result.period_days == 1
        assert ("canceled", 1) in [(call[0], call[1]) for call in source.calls]

    def test_revenue_by_plan(self, service) -> None:
        result = service.revenue_by_plan()
        assert result.total == 4000
        assert result.plans[0].subscriber_count == 2

    def test_subscriber_stats_includes_canceled(self, service) -> None:
        stats = service.subscriber_stats(7)
        assert stats.total_active == 2
        assert stats.new_this_period == 1
        assert stats.churned_this_period == 1

    def test_subscriber_stats_zero_period_is_one_day(self, service) -> None:
        stats = service.subscriber_stats(0)
        assert stats.period_days == 1
        assert stats.new_this_period == 0

    def test_recent_changes_defaults_to_dashboard_window(self, service, source) -> None:
        result = service.recent_changes()
        assert result.days == 7
        assert result.summary.upgraded_count == 1
        assert result.summary.new_count == 1
        assert source.calls[-1][:2] == ("events", 7)

    def test_mrr_movement(self, service) -> None:
        result = service.mrr_movement()
        assert result.new == 2000
        assert result.expansion == 1000
        assert result.churned == 2000
        assert result.net_new == 1000

    def test_dashboard(self, service) -> None:
        result = service.dashboard()
        assert result.mrr.total == 4000
        assert result.quick_ratio == 1.5
        assert len(result.failed_payments) == 1
        assert [trial.subscription_id for trial in result.expiring_trials] == ["trial"]

    def test_failed_payments(self, service) -> None:
        result = service.failed_payments()
        assert result.days == 30
        assert result.total_at_risk == 2000
        assert result.currency == "usd"

    def test_failed_payments_empty_uses_fallback_currency(self, make_source, now) -> None:
        service = MetricsService(
            source=make_source(),
            settings=MetricsSettings(fallback_currency="eur"),
            clock=lambda: now,
        )
        result = service.failed_payments(14)
        assert result.total_at_risk == 0
        assert result.currency == "eur"

    def test_no_churn_dashboard(self, make_source, make_subscription, now) -> None:
        service = MetricsService(
            source=make_source(subscriptions=[make_subscription(created_at=now - timedelta(days=1))]),
            clock=lambda: now,
        )
        assert math.isinf(service.dashboard().quick_ratio)

    def test_mixed_currency_propagates(self, make_source, make_subscription, now) -> None:
        service = MetricsService(
            source=make_source(
                subscriptions=[make_subscription(id="a"), make_subscription(id="b", currency="eur")]
            ),
            clock=lambda: now,
        )
        with pytest.raises(MixedCurrencyError):
            service.mrr()
