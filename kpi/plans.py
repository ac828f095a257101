"""
kpi/plans.py

MRR broken down by plan.

A subscription is attributed entirely to the plan of its first line item,
even when it carries several items.  The amount attributed is the whole
subscription's discounted monthly amount, so the plan rows reconcile with
:func:`kpi.mrr.compute_mrr` over the same snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Sequence

from app.domain.billing import Subscription
from kpi.currency import DEFAULT_CURRENCY, resolve_currency
from kpi.normalization import subscription_monthly_amount
from kpi.rounding import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanBreakdown:
    """
    One plan row.

    ``unit_amount`` and ``interval`` describe the first item that opened
    the row; ``revenue`` is the fractional monthly sum for the plan.
    """

    plan_name: str
    product_name: str
    unit_amount: int
    interval: str
    subscriber_count: int
    revenue: float
    percent_of_total: float = 0.0

    @property
    def rounded_revenue(self) -> int:
        return round_half_up(self.revenue)


@dataclass(frozen=True)
class RevenueByPlanResult:
    plans: list[PlanBreakdown]
    total: int
    currency: str


def compute_revenue_by_plan(
    subscriptions: Sequence[Subscription],
    *,
    fallback_currency: str = DEFAULT_CURRENCY,
) -> RevenueByPlanResult:
    """
    Group contributing subscriptions by plan and compute each plan's share.

    Rows are sorted by revenue, highest first.

    Raises
    ------
    MixedCurrencyError
        When the contributing subscriptions span more than one currency.
        Non-contributing subscriptions are not checked.
    """
    contributing = [sub for sub in subscriptions if sub.is_contributing]
    if not contributing:
        return RevenueByPlanResult(plans=[], total=0, currency=fallback_currency.lower())

    currency = resolve_currency(contributing, fallback=fallback_currency)

    rows: dict[str, PlanBreakdown] = {}
    for sub in contributing:
        first = sub.first_item
        if first is None:
            continue

        revenue = subscription_monthly_amount(sub)
        existing = rows.get(first.plan_name)
        if existing is None:
            rows[first.plan_name] = PlanBreakdown(
                plan_name=first.plan_name,
                product_name=first.product_name,
                unit_amount=first.unit_amount,
                interval=first.interval_label,
                subscriber_count=1,
                revenue=revenue,
            )
        else:
            rows[first.plan_name] = replace(
                existing,
                subscriber_count=existing.subscriber_count + 1,
                revenue=existing.revenue + revenue,
            )

    total = sum(row.revenue for row in rows.values())
    plans = [
        replace(row, percent_of_total=0.0 if total == 0 else row.revenue / total * 100)
        for row in rows.values()
    ]
    plans.sort(key=lambda row: row.revenue, reverse=True)

    logger.debug("Revenue by plan computed: %d plans, total %.4f %s", len(plans), total, currency)
    return RevenueByPlanResult(plans=plans, total=round_half_up(total), currency=currency)
