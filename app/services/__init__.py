"""
app/services package marker.
"""

from app.services.metrics_service import (
    BillingDataSource,
    BillingSnapshot,
    FailedPaymentsResult,
    MetricsService,
    get_metrics_service,
)

__all__ = [
    "BillingDataSource",
    "BillingSnapshot",
    "FailedPaymentsResult",
    "MetricsService",
    "get_metrics_service",
]
