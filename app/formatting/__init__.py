"""
app/formatting package marker.
"""

from app.formatting.markdown import (
    changes_to_markdown,
    churn_to_markdown,
    dashboard_to_markdown,
    failed_payments_to_markdown,
    format_cents,
    format_date,
    format_percent,
    mrr_movement_to_markdown,
    mrr_to_markdown,
    plan_breakdown_to_markdown,
    subscriber_stats_to_markdown,
)

__all__ = [
    "changes_to_markdown",
    "churn_to_markdown",
    "dashboard_to_markdown",
    "failed_payments_to_markdown",
    "format_cents",
    "format_date",
    "format_percent",
    "mrr_movement_to_markdown",
    "mrr_to_markdown",
    "plan_breakdown_to_markdown",
    "subscriber_stats_to_markdown",
]
