"""
app/connectors package marker.
"""

from app.connectors.base import BaseHTTPConnector, BillingAPIError
from app.connectors.stripe_connector import StripeConnector

__all__ = [
    "BaseHTTPConnector",
    "BillingAPIError",
    "StripeConnector",
]
