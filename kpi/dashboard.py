"""
kpi/dashboard.py

The "morning check": MRR, movement, failed payments, expiring trials and
Quick Ratio merged into one result.  No computation of its own beyond
calling the other engines with one shared reference time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from app.domain.billing import BillingEvent, FailedPayment, Subscription
from kpi.currency import DEFAULT_CURRENCY
from kpi.movement import (
    DEFAULT_TRIAL_WINDOW_DAYS,
    MrrMovementResult,
    TrialInfo,
    compute_mrr_movement,
    compute_quick_ratio,
    get_expiring_trials,
)
from kpi.mrr import MrrResult, compute_mrr
from kpi.period import resolve_now

DEFAULT_DASHBOARD_PERIOD_DAYS = 7


@dataclass(frozen=True)
class DashboardResult:
    mrr: MrrResult
    movement: MrrMovementResult
    failed_payments: list[FailedPayment]
    expiring_trials: list[TrialInfo]
    quick_ratio: float


def compute_dashboard(
    current_subscriptions: Sequence[Subscription],
    canceled_subscriptions: Sequence[Subscription],
    events: Sequence[BillingEvent],
    failed_payments: Sequence[FailedPayment],
    period_days: int = DEFAULT_DASHBOARD_PERIOD_DAYS,
    *,
    now: datetime | None = None,
    trial_window_days: int = DEFAULT_TRIAL_WINDOW_DAYS,
    fallback_currency: str = DEFAULT_CURRENCY,
) -> DashboardResult:
    """
    Build the dashboard from one snapshot.

    Raises
    ------
    MixedCurrencyError
        Propagated from :func:`kpi.mrr.compute_mrr`.
    """
    reference = resolve_now(now)
    mrr = compute_mrr(current_subscriptions, now=reference, fallback_currency=fallback_currency)
    movement = compute_mrr_movement(
        current_subscriptions,
        canceled_subscriptions,
        events,
        period_days,
        now=reference,
        fallback_currency=fallback_currency,
    )
    return DashboardResult(
        mrr=mrr,
        movement=movement,
        failed_payments=list(failed_payments),
        expiring_trials=get_expiring_trials(current_subscriptions, trial_window_days, now=reference),
        quick_ratio=compute_quick_ratio(movement),
    )
