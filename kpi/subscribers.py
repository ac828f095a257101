"""
kpi/subscribers.py

Subscriber head-counts for a look-back period.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from app.domain.billing import LIVE_STATUSES, Subscription, SubscriptionStatus
from kpi.period import normalize_period_days, period_cutoff, resolve_now


@dataclass(frozen=True)
class SubscriberStats:
    period_days: int
    total_active: int
    trialing: int
    past_due: int
    new_this_period: int
    churned_this_period: int
    net_change: int


def compute_subscriber_stats(
    subscriptions: Sequence[Subscription],
    period_days: int,
    *,
    now: datetime | None = None,
) -> SubscriberStats:
    """
    Count subscribers in a single pass.

    * ``total_active``: active or past-due.
    * ``new_this_period``: created inside the period and still live
      (active, trialing or past-due).
    * ``churned_this_period``: canceled inside the period, whatever the
      current status.
    """
    days = normalize_period_days(period_days)
    cutoff = period_cutoff(resolve_now(now), days)

    total_active = trialing = past_due = new = churned = 0
    for sub in subscriptions:
        if sub.is_contributing:
            total_active += 1
        if sub.status is SubscriptionStatus.TRIALING:
            trialing += 1
        if sub.status is SubscriptionStatus.PAST_DUE:
            past_due += 1
        if sub.created_at >= cutoff and sub.status in LIVE_STATUSES:
            new += 1
        if sub.canceled_at is not None and sub.canceled_at >= cutoff:
            churned += 1

    return SubscriberStats(
        period_days=days,
        total_active=total_active,
        trialing=trialing,
        past_due=past_due,
        new_this_period=new,
        churned_this_period=churned,
        net_change=new - churned,
    )
