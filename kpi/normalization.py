"""
kpi/normalization.py

Monthly normalization of billing amounts.

Formulas
--------
per_interval = amount / interval_count

month  -> per_interval
year   -> per_interval / 12
week   -> per_interval * 52 / 12
day    -> per_interval * 365 / 12

This is a calendar-average approximation, not a day-count-exact
conversion.  Results stay fractional; rounding to whole minor units is
left to the final aggregate.
"""

from __future__ import annotations

from app.domain.billing import BillingInterval, Subscription

_MONTHLY_FACTOR: dict[BillingInterval, float] = {
    BillingInterval.MONTH: 1.0,
    BillingInterval.WEEK: 52.0 / 12.0,
    BillingInterval.DAY: 365.0 / 12.0,
}


def normalize_to_monthly(
    amount: float,
    interval: BillingInterval,
    interval_count: int,
) -> float:
    """
    Convert an amount billed every ``interval_count`` ``interval``s into a
    monthly-equivalent amount.

    ``interval_count`` must be >= 1; :class:`~app.domain.billing.LineItem`
    guarantees this at construction.
    """
    per_interval = amount / interval_count
    interval = BillingInterval(interval)
    if interval is BillingInterval.YEAR:
        return per_interval / 12
    return per_interval * _MONTHLY_FACTOR[interval]


def subscription_monthly_amount(subscription: Subscription) -> float:
    """
    Monthly contribution of one subscription, ignoring its status.

    Steps
    -----
    1. Normalize every item to monthly and sum.
    2. Apply the discount: a percentage scales the sum; an amount-off is
       normalized with the *first* item's cadence and subtracted.
    3. Clamp at zero.

    A subscription without items contributes ``0.0``.
    """
    if not subscription.items:
        return 0.0

    monthly = sum(
        normalize_to_monthly(item.amount, item.interval, item.interval_count)
        for item in subscription.items
    )

    discount = subscription.discount
    if discount is not None:
        if discount.percent_off is not None:
            monthly *= 1 - discount.percent_off / 100
        elif discount.amount_off is not None:
            reference = subscription.items[0]
            monthly -= normalize_to_monthly(
                discount.amount_off,
                reference.interval,
                reference.interval_count,
            )

    return max(0.0, monthly)
