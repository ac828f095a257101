"""
kpi/churn.py

Customer and revenue churn over a look-back period.

Formulas
--------
customer_churn_rate = churned_count / starting_count * 100
revenue_churn_rate  = churned_revenue / starting_revenue * 100

The starting population is every active or past-due subscription created
strictly before the period started.  The churned population is taken
as given: the caller has already bounded it to the period.

A zero denominator yields a rate of ``0.0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from app.domain.billing import Subscription
from kpi.currency import DEFAULT_CURRENCY, resolve_currency
from kpi.normalization import subscription_monthly_amount
from kpi.period import normalize_period_days, period_cutoff, resolve_now
from kpi.rounding import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChurnResult:
    period_days: int
    period_start: datetime
    period_end: datetime
    customer_churn_rate: float
    revenue_churn_rate: float
    churned_count: int
    churned_revenue: int
    starting_count: int
    starting_revenue: int
    currency: str


def _safe_rate(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100


def compute_churn(
    all_subscriptions: Sequence[Subscription],
    churned_subscriptions: Sequence[Subscription],
    period_days: int,
    *,
    now: datetime | None = None,
    fallback_currency: str = DEFAULT_CURRENCY,
) -> ChurnResult:
    """
    Compute churn rates for the *period_days* ending at *now*.

    Raises
    ------
    MixedCurrencyError
        When the union of both collections spans more than one currency.
    """
    days = normalize_period_days(period_days)
    period_end = resolve_now(now)
    period_start = period_cutoff(period_end, days)

    combined = [*all_subscriptions, *churned_subscriptions]
    if not combined:
        return ChurnResult(
            period_days=days,
            period_start=period_start,
            period_end=period_end,
            customer_churn_rate=0.0,
            revenue_churn_rate=0.0,
            churned_count=0,
            churned_revenue=0,
            starting_count=0,
            starting_revenue=0,
            currency=fallback_currency.lower(),
        )

    currency = resolve_currency(combined, fallback=fallback_currency)

    starting = [
        sub for sub in all_subscriptions
        if sub.is_contributing and sub.created_at < period_start
    ]
    starting_revenue = sum(subscription_monthly_amount(sub) for sub in starting)
    churned_revenue = sum(subscription_monthly_amount(sub) for sub in churned_subscriptions)

    customer_rate = _safe_rate(len(churned_subscriptions), len(starting))
    revenue_rate = _safe_rate(churned_revenue, starting_revenue)

    logger.debug(
        "Churn computed over %d days: customers %d/%d (%.4f%%), revenue %.4f/%.4f (%.4f%%)",
        days,
        len(churned_subscriptions),
        len(starting),
        customer_rate,
        churned_revenue,
        starting_revenue,
        revenue_rate,
    )
    return ChurnResult(
        period_days=days,
        period_start=period_start,
        period_end=period_end,
        customer_churn_rate=customer_rate,
        revenue_churn_rate=revenue_rate,
        churned_count=len(churned_subscriptions),
        churned_revenue=round_half_up(churned_revenue),
        starting_count=len(starting),
        starting_revenue=round_half_up(starting_revenue),
        currency=currency,
    )
