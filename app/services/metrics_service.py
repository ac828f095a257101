"""
app/services/metrics_service.py

Billing metrics service.

Pulls one snapshot from a :class:`BillingDataSource` and runs the pure
engines in ``kpi/`` against it.  The engines perform no I/O; everything
provider-facing happens here, before any computation starts, so that all
metrics computed from one snapshot reconcile with each other.

The reference time is read once per call from the injected ``clock`` and
passed to both the data source and the engines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Protocol, Sequence

from app.config import (
    MetricsSettings,
    get_billing_api_settings,
    get_external_http_settings,
    get_metrics_settings,
)
from app.domain.billing import (
    BillingEvent,
    FailedPayment,
    Subscription,
    SubscriptionStatus,
)
from app.logging_utils import log_event
from kpi.changes import RecentChangesResult, compute_recent_changes
from kpi.churn import ChurnResult, compute_churn
from kpi.dashboard import DashboardResult, compute_dashboard
from kpi.movement import MrrMovementResult, compute_mrr_movement
from kpi.mrr import MrrResult, compute_mrr
from kpi.period import normalize_period_days
from kpi.plans import RevenueByPlanResult, compute_revenue_by_plan
from kpi.subscribers import SubscriberStats, compute_subscriber_stats

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

SUBSCRIBER_STATS_STATUSES: tuple[SubscriptionStatus, ...] = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.CANCELED,
)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class BillingDataSource(Protocol):
    """
    Anything that can produce normalized billing entities.
    """

    def fetch_subscriptions(self, statuses: Sequence[SubscriptionStatus] = ...) -> list[Subscription]:
        ...

    def fetch_canceled_subscriptions(self, since_days: int, *, now: datetime | None = None) -> list[Subscription]:
        ...

    def fetch_recent_events(self, days: int, *, now: datetime | None = None) -> list[BillingEvent]:
        ...

    def fetch_failed_payments(self, days: int, *, now: datetime | None = None) -> list[FailedPayment]:
        ...


@dataclass(frozen=True)
class BillingSnapshot:
    """
    One consistent read of the billing provider.
    """

    taken_at: datetime
    subscriptions: list[Subscription] = field(default_factory=list)
    canceled_subscriptions: list[Subscription] = field(default_factory=list)
    events: list[BillingEvent] = field(default_factory=list)
    failed_payments: list[FailedPayment] = field(default_factory=list)


@dataclass(frozen=True)
class FailedPaymentsResult:
    days: int
    failed_payments: list[FailedPayment]
    total_at_risk: int
    currency: str


class MetricsService:
    """
    Computes billing metrics from a live data source.

    Usage::

        service = MetricsService(source=StripeConnector(...))
        result = service.mrr()
        print(result.total)
    """

    def __init__(
        self,
        *,
        source: BillingDataSource,
        settings: MetricsSettings | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self._source = source
        self._settings = settings or MetricsSettings()
        self._clock = clock

    @property
    def settings(self) -> MetricsSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def take_snapshot(
        self,
        *,
        statuses: Sequence[SubscriptionStatus] | None = None,
        canceled_days: int | None = None,
        event_days: int | None = None,
        failed_payment_days: int | None = None,
    ) -> BillingSnapshot:
        """
        Fetch the collections a metric needs, all relative to one instant.

        A collection is only fetched when its window (or ``statuses``) is
        given; current subscriptions are always fetched.
        """

        now = self._clock()
        subscriptions = (
            self._source.fetch_subscriptions(statuses)
            if statuses is not None
            else self._source.fetch_subscriptions()
        )
        snapshot = BillingSnapshot(
            taken_at=now,
            subscriptions=subscriptions,
            canceled_subscriptions=(
                self._source.fetch_canceled_subscriptions(canceled_days, now=now)
                if canceled_days is not None
                else []
            ),
            events=(
                self._source.fetch_recent_events(event_days, now=now)
                if event_days is not None
                else []
            ),
            failed_payments=(
                self._source.fetch_failed_payments(failed_payment_days, now=now)
                if failed_payment_days is not None
                else []
            ),
        )
        log_event(
            logger,
            logging.INFO,
            "billing_snapshot_taken",
            taken_at=now,
            subscriptions=len(snapshot.subscriptions),
            canceled=len(snapshot.canceled_subscriptions),
            events=len(snapshot.events),
            failed_payments=len(snapshot.failed_payments),
        )
        return snapshot

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def mrr(self) -> MrrResult:
        snapshot = self.take_snapshot()
        return compute_mrr(
            snapshot.subscriptions,
            now=snapshot.taken_at,
            fallback_currency=self._settings.fallback_currency,
        )

    def churn(self, period_days: int | None = None) -> ChurnResult:
        days = normalize_period_days(
            period_days if period_days is not None else self._settings.default_period_days
        )
        snapshot = self.take_snapshot(canceled_days=days)
        result = compute_churn(
            snapshot.subscriptions,
            snapshot.canceled_subscriptions,
            days,
            now=snapshot.taken_at,
            fallback_currency=self._settings.fallback_currency,
        )
        log_event(
            logger,
            logging.INFO,
            "churn_computed",
            period_days=result.period_days,
            customer_churn_rate=round(result.customer_churn_rate, 4),
            revenue_churn_rate=round(result.revenue_churn_rate, 4),
        )
        return result

    def revenue_by_plan(self) -> RevenueByPlanResult:
        snapshot = self.take_snapshot()
        return compute_revenue_by_plan(
            snapshot.subscriptions,
            fallback_currency=self._settings.fallback_currency,
        )

    def subscriber_stats(self, period_days: int | None = None) -> SubscriberStats:
        days = period_days if period_days is not None else self._settings.default_period_days
        snapshot = self.take_snapshot(statuses=SUBSCRIBER_STATS_STATUSES)
        return compute_subscriber_stats(snapshot.subscriptions, days, now=snapshot.taken_at)

    def recent_changes(self, days: int | None = None) -> RecentChangesResult:
        window = days if days is not None else self._settings.dashboard_period_days
        now = self._clock()
        events = self._source.fetch_recent_events(window, now=now)
        return compute_recent_changes(events, window)

    def mrr_movement(self, period_days: int | None = None) -> MrrMovementResult:
        days = period_days if period_days is not None else self._settings.dashboard_period_days
        snapshot = self.take_snapshot(canceled_days=days, event_days=days)
        return compute_mrr_movement(
            snapshot.subscriptions,
            snapshot.canceled_subscriptions,
            snapshot.events,
            days,
            now=snapshot.taken_at,
            fallback_currency=self._settings.fallback_currency,
        )

    def dashboard(self) -> DashboardResult:
        days = self._settings.dashboard_period_days
        snapshot = self.take_snapshot(
            canceled_days=days,
            event_days=days,
            failed_payment_days=self._settings.failed_payment_days,
        )
        result = compute_dashboard(
            snapshot.subscriptions,
            snapshot.canceled_subscriptions,
            snapshot.events,
            snapshot.failed_payments,
            days,
            now=snapshot.taken_at,
            trial_window_days=self._settings.trial_window_days,
            fallback_currency=self._settings.fallback_currency,
        )
        log_event(
            logger,
            logging.INFO,
            "dashboard_computed",
            mrr=result.mrr.total,
            net_new=result.movement.net_new,
            quick_ratio=result.quick_ratio,
            failed_payments=len(result.failed_payments),
            expiring_trials=len(result.expiring_trials),
        )
        return result

    def failed_payments(self, days: int | None = None) -> FailedPaymentsResult:
        window = days if days is not None else self._settings.failed_payment_days
        payments = self._source.fetch_failed_payments(window, now=self._clock())
        currency = payments[0].currency if payments else self._settings.fallback_currency
        return FailedPaymentsResult(
            days=window,
            failed_payments=payments,
            total_at_risk=sum(payment.amount for payment in payments),
            currency=currency,
        )


@lru_cache(maxsize=1)
def get_metrics_service() -> MetricsService:
    """
    Build and cache the metrics service backed by the Stripe connector.
    """

    from app.connectors.stripe_connector import StripeConnector

    connector = StripeConnector(
        settings=get_billing_api_settings(),
        http_settings=get_external_http_settings(),
    )
    return MetricsService(source=connector, settings=get_metrics_settings())
