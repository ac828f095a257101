"""
Shared fixtures for billing metric tests.

All tests are pure Python, with no network and no database.  Time-sensitive
metrics are pinned to :data:`NOW` through their ``now`` argument.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import pytest

from app.connectors.stripe_connector import DEFAULT_SUBSCRIPTION_STATUSES
from app.domain.billing import (
    BillingEvent,
    BillingInterval,
    Discount,
    EventType,
    FailedPayment,
    LineItem,
    Subscription,
    SubscriptionStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_item(
    unit_amount: int = 2000,
    quantity: int = 1,
    interval: BillingInterval | str = BillingInterval.MONTH,
    interval_count: int = 1,
    plan_name: str = "Basic Plan",
    product_name: str = "Test Product",
) -> LineItem:
    return LineItem(
        unit_amount=unit_amount,
        quantity=quantity,
        interval=BillingInterval(interval),
        interval_count=interval_count,
        plan_name=plan_name,
        product_name=product_name,
        price_id=f"price_{plan_name.lower().replace(' ', '_')}",
    )


def build_subscription(**overrides: Any) -> Subscription:
    fields: dict[str, Any] = {
        "id": "sub_test123",
        "customer_id": "cus_test123",
        "customer_email": "test@example.com",
        "status": SubscriptionStatus.ACTIVE,
        "created_at": NOW - timedelta(days=60),
        "currency": "usd",
        "items": (build_item(),),
    }
    fields.update(overrides)
    return Subscription(**fields)


def build_event(**overrides: Any) -> BillingEvent:
    fields: dict[str, Any] = {
        "id": "evt_test123",
        "type": EventType.SUBSCRIPTION_UPDATED,
        "created": NOW - timedelta(days=1),
        "customer_id": "cus_test123",
        "customer_email": "test@example.com",
        "plan_name": "Basic Plan",
    }
    fields.update(overrides)
    return BillingEvent(**fields)


class InMemoryBillingSource:
    """
    Billing data source backed by plain lists.

    Applies the same windowing a provider connector would and records
    every fetch as ``(kind, argument, now)``.
    """

    def __init__(
        self,
        subscriptions: list[Subscription] | None = None,
        events: list[BillingEvent] | None = None,
        failed_payments: list[FailedPayment] | None = None,
    ) -> None:
        self.subscriptions = list(subscriptions or [])
        self.events = list(events or [])
        self.failed_payments = list(failed_payments or [])
        self.calls: list[tuple[str, Any, datetime | None]] = []

    def fetch_subscriptions(
        self,
        statuses: Sequence[SubscriptionStatus] = DEFAULT_SUBSCRIPTION_STATUSES,
    ) -> list[Subscription]:
        self.calls.append(("subscriptions", tuple(statuses), None))
        wanted = set(statuses)
        return [sub for sub in self.subscriptions if sub.status in wanted]

    def fetch_canceled_subscriptions(self, since_days: int, *, now: datetime | None = None) -> list[Subscription]:
        self.calls.append(("canceled", since_days, now))
        cutoff = (now or NOW) - timedelta(days=since_days)
        return [
            sub
            for sub in self.subscriptions
            if sub.status is SubscriptionStatus.CANCELED and sub.canceled_at and sub.canceled_at >= cutoff
        ]

    def fetch_recent_events(self, days: int, *, now: datetime | None = None) -> list[BillingEvent]:
        self.calls.append(("events", days, now))
        cutoff = (now or NOW) - timedelta(days=days)
        return [event for event in self.events if event.created >= cutoff]

    def fetch_failed_payments(self, days: int, *, now: datetime | None = None) -> list[FailedPayment]:
        self.calls.append(("failed_payments", days, now))
        return list(self.failed_payments)


@pytest.fixture()
def make_source() -> Callable[..., InMemoryBillingSource]:
    return InMemoryBillingSource


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def make_item() -> Callable[..., LineItem]:
    return build_item


@pytest.fixture()
def make_subscription() -> Callable[..., Subscription]:
    return build_subscription


@pytest.fixture()
def make_event() -> Callable[..., BillingEvent]:
    return build_event


@pytest.fixture()
def percent_discount() -> Discount:
    return Discount(coupon_id="SAVE20", percent_off=20)


@pytest.fixture()
def amount_discount() -> Discount:
    return Discount(coupon_id="FIVEOFF", amount_off=500)
