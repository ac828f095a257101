"""
app/domain/billing.py

Normalized billing entities consumed by the metrics engine.

Every entity is a frozen dataclass: the metric functions in ``kpi/`` may
share one snapshot of these objects without coordinating, because nothing
can mutate them after construction.

Amounts are integer minor currency units (cents for USD).  Timestamps are
timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SubscriptionStatus(str, Enum):
    """Closed set of provider subscription statuses."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


# Statuses whose revenue counts toward MRR.
CONTRIBUTING_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE}
)

# Statuses that count as a live subscriber for "new this period".
LIVE_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE}
)


class BillingInterval(str, Enum):
    """Recurring billing cadence of a price."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class EventType(str, Enum):
    """
    Provider notification types the metrics layer understands.

    Anything else is carried as ``OTHER`` so callers can keep the raw
    stream without the engine having to know every provider event.
    """

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    OTHER = "other"

    @classmethod
    def from_provider(cls, raw: str) -> "EventType":
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class LineItem:
    """
    One priced component of a subscription.

    ``unit_amount`` is charged per unit every ``interval_count`` intervals.
    A non-positive ``interval_count`` is rejected here so that monthly
    normalization never divides by zero downstream.
    """

    unit_amount: int
    quantity: int
    interval: BillingInterval
    interval_count: int = 1
    plan_name: str = "Unknown Plan"
    product_name: str = "Unknown Product"
    price_id: str | None = None

    def __post_init__(self) -> None:
        if self.interval_count < 1:
            raise ValueError(
                f"interval_count must be >= 1, got {self.interval_count}."
            )
        if self.quantity < 0:
            raise ValueError(f"quantity must be >= 0, got {self.quantity}.")
        if not isinstance(self.interval, BillingInterval):
            object.__setattr__(self, "interval", BillingInterval(self.interval))

    @property
    def amount(self) -> int:
        """Amount billed per cadence for this item (unit amount x quantity)."""
        return self.unit_amount * self.quantity

    @property
    def interval_label(self) -> str:
        """Human label such as ``month`` or ``3 months``."""
        if self.interval_count == 1:
            return self.interval.value
        return f"{self.interval_count} {self.interval.value}s"


@dataclass(frozen=True)
class Discount:
    """
    Coupon attached to a subscription.

    Only one of ``percent_off`` (0-100) and ``amount_off`` (minor units)
    is meaningful; when both are set the percentage wins.
    """

    coupon_id: str
    percent_off: float | None = None
    amount_off: int | None = None


@dataclass(frozen=True)
class Subscription:
    """
    A billing agreement between the merchant and one customer.
    """

    id: str
    customer_id: str
    status: SubscriptionStatus
    created_at: datetime
    currency: str
    items: tuple[LineItem, ...] = field(default_factory=tuple)
    customer_email: str | None = None
    canceled_at: datetime | None = None
    trial_end: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at: datetime | None = None
    discount: Discount | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, SubscriptionStatus):
            object.__setattr__(self, "status", SubscriptionStatus(self.status))
        if not isinstance(self.items, tuple):
            object.__setattr__(self, "items", tuple(self.items))

    @property
    def is_contributing(self) -> bool:
        return self.status in CONTRIBUTING_STATUSES

    @property
    def first_item(self) -> LineItem | None:
        return self.items[0] if self.items else None


@dataclass(frozen=True)
class BillingEvent:
    """
    Normalized provider notification.

    ``amount`` / ``previous_amount`` are only both present on update events
    that changed the subscription's price or quantity.  ``currency`` is the
    subscription or invoice currency when the payload carries one.
    """

    id: str
    type: EventType
    created: datetime
    customer_id: str | None = None
    customer_email: str | None = None
    subscription_id: str | None = None
    plan_name: str | None = None
    amount: int | None = None
    previous_plan_name: str | None = None
    previous_amount: int | None = None
    currency: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType.from_provider(str(self.type)))


@dataclass(frozen=True)
class FailedPayment:
    """
    An open invoice whose last collection attempt failed.
    """

    invoice_id: str
    customer_email: str
    amount: int
    currency: str
    failure_reason: str
    attempt_count: int
    last_attempt_at: datetime | None = None
    customer_id: str | None = None
    plan_name: str | None = None
