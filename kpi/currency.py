"""
kpi/currency.py

Single-currency guard shared by every amount-bearing metric.
"""

from __future__ import annotations

from typing import Iterable

from app.domain.billing import Subscription

DEFAULT_CURRENCY = "usd"


class MixedCurrencyError(ValueError):
    """
    Raised when an aggregation spans more than one currency code.

    ``currencies`` holds the offending codes upper-cased, de-duplicated
    and sorted.
    """

    def __init__(self, currencies: Iterable[str]) -> None:
        self.currencies: tuple[str, ...] = tuple(sorted({code.upper() for code in currencies}))
        super().__init__(
            f"Mixed currencies not supported. Found: {', '.join(self.currencies)}"
        )


def resolve_currency(
    subscriptions: Iterable[Subscription],
    fallback: str = DEFAULT_CURRENCY,
) -> str:
    """
    Return the one lower-cased currency shared by *subscriptions*.

    Returns *fallback* for an empty collection and raises
    :class:`MixedCurrencyError` when more than one code is present.
    """
    codes = {subscription.currency.lower() for subscription in subscriptions}
    if not codes:
        return fallback.lower()
    if len(codes) > 1:
        raise MixedCurrencyError(codes)
    return codes.pop()
