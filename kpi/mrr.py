"""
kpi/mrr.py

Monthly Recurring Revenue (MRR).

Rules
-----
1. Every subscription must share one currency, contributing or not.
2. The status breakdown counts active, trialing and past-due
   subscriptions regardless of whether they contribute revenue.
3. Only active and past-due subscriptions contribute to the total.
4. Each contributing subscription adds its discounted, clamped monthly
   amount (see :func:`kpi.normalization.subscription_monthly_amount`).
5. The total is rounded to whole minor units once, at the end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from app.domain.billing import Subscription, SubscriptionStatus
from kpi.currency import DEFAULT_CURRENCY, resolve_currency
from kpi.normalization import subscription_monthly_amount
from kpi.period import resolve_now
from kpi.rounding import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusBreakdown:
    active: int = 0
    trialing: int = 0
    past_due: int = 0


@dataclass(frozen=True)
class MrrResult:
    """
    MRR snapshot.

    ``total`` is in minor units; ``contributing_count`` is the number of
    active and past-due subscriptions that were summed.
    """

    total: int
    currency: str
    contributing_count: int
    status_breakdown: StatusBreakdown
    as_of: datetime


def compute_mrr(
    subscriptions: Sequence[Subscription],
    *,
    now: datetime | None = None,
    fallback_currency: str = DEFAULT_CURRENCY,
) -> MrrResult:
    """
    Compute MRR over *subscriptions*.

    Raises
    ------
    MixedCurrencyError
        When the subscriptions do not share one currency.  Nothing is
        summed before the check.
    """
    as_of = resolve_now(now)
    currency = resolve_currency(subscriptions, fallback=fallback_currency)

    breakdown = StatusBreakdown(
        active=sum(1 for sub in subscriptions if sub.status is SubscriptionStatus.ACTIVE),
        trialing=sum(1 for sub in subscriptions if sub.status is SubscriptionStatus.TRIALING),
        past_due=sum(1 for sub in subscriptions if sub.status is SubscriptionStatus.PAST_DUE),
    )

    contributing = [sub for sub in subscriptions if sub.is_contributing]
    total = sum(subscription_monthly_amount(sub) for sub in contributing)

    logger.debug(
        "MRR computed from %d contributing of %d subscriptions: %.4f %s",
        len(contributing),
        len(subscriptions),
        total,
        currency,
    )
    return MrrResult(
        total=round_half_up(total),
        currency=currency,
        contributing_count=len(contributing),
        status_breakdown=breakdown,
        as_of=as_of,
    )
