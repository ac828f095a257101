"""
kpi/movement.py

MRR movement waterfall, Quick Ratio and expiring trials.

Waterfall
---------
net_new = new + expansion - contraction - churned

new          active/past-due subscriptions created inside the period
expansion    positive amount deltas on subscription-updated events
contraction  negative amount deltas (absolute) on subscription-updated events
churned      subscriptions canceled inside the period

Quick Ratio
-----------
(new + expansion) / (contraction + churned)

``math.inf`` when nothing was lost but something was gained, ``0.0`` when
nothing moved at all.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from app.domain.billing import BillingEvent, EventType, Subscription, SubscriptionStatus
from kpi.currency import DEFAULT_CURRENCY
from kpi.normalization import subscription_monthly_amount
from kpi.period import period_cutoff, resolve_now
from kpi.rounding import round_half_up, round_half_up_tenth

logger = logging.getLogger(__name__)

QUICK_RATIO_NO_CHURN = math.inf

DEFAULT_TRIAL_WINDOW_DAYS = 3

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class MrrMovementResult:
    period_days: int
    new: int
    expansion: int
    contraction: int
    churned: int
    net_new: int
    currency: str


@dataclass(frozen=True)
class TrialInfo:
    subscription_id: str
    customer_id: str
    customer_email: str
    plan_name: str
    trial_end: datetime
    days_remaining: int
    value_if_converted: int


def compute_mrr_movement(
    current_subscriptions: Sequence[Subscription],
    canceled_subscriptions: Sequence[Subscription],
    events: Sequence[BillingEvent],
    period_days: int,
    *,
    now: datetime | None = None,
    fallback_currency: str = DEFAULT_CURRENCY,
) -> MrrMovementResult:
    """
    Decompose the MRR change over the last *period_days* into its parts.

    The currency is taken from the first current subscription; the
    waterfall does not enforce a single currency.
    """
    cutoff = period_cutoff(resolve_now(now), period_days)
    currency = (
        current_subscriptions[0].currency.lower()
        if current_subscriptions
        else fallback_currency.lower()
    )

    new = sum(
        subscription_monthly_amount(sub)
        for sub in current_subscriptions
        if sub.created_at >= cutoff and sub.is_contributing
    )
    churned = sum(
        subscription_monthly_amount(sub)
        for sub in canceled_subscriptions
        if sub.canceled_at is not None and sub.canceled_at >= cutoff
    )

    expansion = 0.0
    contraction = 0.0
    for event in events:
        if event.type is not EventType.SUBSCRIPTION_UPDATED or event.created < cutoff:
            continue
        if event.amount is None or event.previous_amount is None:
            continue
        delta = event.amount - event.previous_amount
        if delta > 0:
            expansion += delta
        elif delta < 0:
            contraction += -delta

    net_new = new + expansion - contraction - churned
    logger.debug(
        "MRR movement over %d days: new=%.2f expansion=%.2f contraction=%.2f churned=%.2f",
        period_days,
        new,
        expansion,
        contraction,
        churned,
    )
    return MrrMovementResult(
        period_days=period_days,
        new=round_half_up(new),
        expansion=round_half_up(expansion),
        contraction=round_half_up(contraction),
        churned=round_half_up(churned),
        net_new=round_half_up(net_new),
        currency=currency,
    )


def compute_quick_ratio(movement: MrrMovementResult) -> float:
    """
    Quick Ratio of a movement result, rounded to one decimal.

    Returns :data:`QUICK_RATIO_NO_CHURN` when there were gains and no
    losses, and ``0.0`` when there were neither.
    """
    gained = movement.new + movement.expansion
    lost = movement.contraction + movement.churned
    if lost > 0:
        return round_half_up_tenth(gained / lost)
    if gained > 0:
        return QUICK_RATIO_NO_CHURN
    return 0.0


def get_expiring_trials(
    subscriptions: Sequence[Subscription],
    within_days: int = DEFAULT_TRIAL_WINDOW_DAYS,
    *,
    now: datetime | None = None,
) -> list[TrialInfo]:
    """
    Trialing subscriptions whose trial ends within the next *within_days*.

    Each entry carries the monthly value the subscription would contribute
    once converted.  Sorted by days remaining, soonest first.
    """
    reference = resolve_now(now)
    horizon = reference + timedelta(days=within_days)

    trials: list[TrialInfo] = []
    for sub in subscriptions:
        if sub.status is not SubscriptionStatus.TRIALING or sub.trial_end is None:
            continue
        if not reference < sub.trial_end <= horizon:
            continue

        remaining_seconds = (sub.trial_end - reference).total_seconds()
        first = sub.first_item
        trials.append(
            TrialInfo(
                subscription_id=sub.id,
                customer_id=sub.customer_id,
                customer_email=sub.customer_email or "No email",
                plan_name=first.plan_name if first is not None else "Unknown",
                trial_end=sub.trial_end,
                days_remaining=math.ceil(remaining_seconds / _SECONDS_PER_DAY),
                value_if_converted=round_half_up(subscription_monthly_amount(sub)),
            )
        )

    trials.sort(key=lambda trial: trial.days_remaining)
    return trials
