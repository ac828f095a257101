"""
kpi/changes.py

Recent subscription changes feed.

Event mapping
-------------
customer.subscription.created  -> new
customer.subscription.deleted  -> canceled
customer.subscription.updated  -> upgraded / downgraded by amount delta
                                  (equal or missing amounts are dropped)
invoice.payment_failed         -> payment_failed
anything else                  -> dropped
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence

from app.domain.billing import BillingEvent, EventType
from kpi.currency import DEFAULT_CURRENCY


class ChangeType(str, Enum):
    NEW = "new"
    CANCELED = "canceled"
    UPGRADED = "upgraded"
    DOWNGRADED = "downgraded"
    PAYMENT_FAILED = "payment_failed"


@dataclass(frozen=True)
class SubscriptionChange:
    type: ChangeType
    customer_email: str
    plan_name: str
    amount: int | None
    date: datetime
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class ChangeSummary:
    new_count: int = 0
    canceled_count: int = 0
    upgraded_count: int = 0
    downgraded_count: int = 0
    failed_payment_count: int = 0


@dataclass(frozen=True)
class RecentChangesResult:
    days: int
    changes: list[SubscriptionChange]
    summary: ChangeSummary


def classify_event(event: BillingEvent) -> ChangeType | None:
    """Map one event to its change category, or ``None`` to drop it."""
    if event.type is EventType.SUBSCRIPTION_CREATED:
        return ChangeType.NEW
    if event.type is EventType.SUBSCRIPTION_DELETED:
        return ChangeType.CANCELED
    if event.type is EventType.SUBSCRIPTION_UPDATED:
        if event.amount is None or event.previous_amount is None:
            return None
        if event.amount > event.previous_amount:
            return ChangeType.UPGRADED
        if event.amount < event.previous_amount:
            return ChangeType.DOWNGRADED
        return None
    if event.type is EventType.INVOICE_PAYMENT_FAILED:
        return ChangeType.PAYMENT_FAILED
    return None


def compute_recent_changes(events: Sequence[BillingEvent], days: int) -> RecentChangesResult:
    """
    Classify *events* and summarise them, most recent first.

    *days* is carried through for reporting; the caller has already
    bounded *events* to that window.
    """
    counts: dict[ChangeType, int] = {change_type: 0 for change_type in ChangeType}
    changes: list[SubscriptionChange] = []

    for event in events:
        change_type = classify_event(event)
        if change_type is None:
            continue
        counts[change_type] += 1
        changes.append(
            SubscriptionChange(
                type=change_type,
                customer_email=event.customer_email or "No email",
                plan_name=event.plan_name or "Unknown Plan",
                amount=event.amount,
                date=event.created,
                currency=(event.currency or DEFAULT_CURRENCY).lower(),
            )
        )

    changes.sort(key=lambda change: change.date, reverse=True)
    summary = ChangeSummary(
        new_count=counts[ChangeType.NEW],
        canceled_count=counts[ChangeType.CANCELED],
        upgraded_count=counts[ChangeType.UPGRADED],
        downgraded_count=counts[ChangeType.DOWNGRADED],
        failed_payment_count=counts[ChangeType.PAYMENT_FAILED],
    )
    return RecentChangesResult(days=days, changes=changes, summary=summary)
