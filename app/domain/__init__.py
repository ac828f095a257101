"""
app/domain package marker.
"""

from app.domain.billing import (
    CONTRIBUTING_STATUSES,
    LIVE_STATUSES,
    BillingEvent,
    BillingInterval,
    Discount,
    EventType,
    FailedPayment,
    LineItem,
    Subscription,
    SubscriptionStatus,
)

__all__ = [
    "BillingEvent",
    "BillingInterval",
    "CONTRIBUTING_STATUSES",
    "Discount",
    "EventType",
    "FailedPayment",
    "LIVE_STATUSES",
    "LineItem",
    "Subscription",
    "SubscriptionStatus",
]
