"""
app/mappers package marker.
"""

from app.mappers.stripe_mapper import (
    BillingRecordError,
    normalize_event,
    normalize_failed_invoice,
    normalize_subscription,
)

__all__ = [
    "BillingRecordError",
    "normalize_event",
    "normalize_failed_invoice",
    "normalize_subscription",
]
