"""
app/formatting/markdown.py

Markdown renderers for metric results.

Renderers are pure: they read result objects and return strings.  Amounts
arrive in minor units and are only rounded here, for display.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from app.services.metrics_service import FailedPaymentsResult
from kpi.changes import ChangeType, RecentChangesResult
from kpi.churn import ChurnResult
from kpi.dashboard import DashboardResult
from kpi.movement import MrrMovementResult
from kpi.mrr import MrrResult
from kpi.plans import RevenueByPlanResult
from kpi.subscribers import SubscriberStats

_CURRENCY_SYMBOLS: dict[str, str] = {
    "usd": "$",
    "eur": "€",
    "gbp": "£",
    "jpy": "¥",
    "cad": "CA$",
    "aud": "A$",
}

_FAILED_PAYMENT_LIMIT = 10

_CHANGE_SECTIONS: tuple[tuple[ChangeType, str], ...] = (
    (ChangeType.NEW, "### New Subscriptions"),
    (ChangeType.CANCELED, "### Cancellations"),
    (ChangeType.UPGRADED, "### Upgrades"),
    (ChangeType.DOWNGRADED, "### Downgrades"),
    (ChangeType.PAYMENT_FAILED, "### Failed Payments"),
)


# ---------------------------------------------------------------------------
# Scalar formatting
# ---------------------------------------------------------------------------


def currency_symbol(currency: str) -> str:
    return _CURRENCY_SYMBOLS.get(currency.lower(), f"{currency.upper()} ")


def format_cents(cents: float, currency: str = "usd") -> str:
    """
    Format minor units as a currency string, e.g. ``$1,234.50`` or ``-$5.00``.
    """
    symbol = currency_symbol(currency)
    formatted = f"{abs(cents) / 100:,.2f}"
    return f"-{symbol}{formatted}" if cents < 0 else f"{symbol}{formatted}"


def format_signed_cents(cents: float, currency: str = "usd") -> str:
    """Like :func:`format_cents` but always carries a sign."""
    if cents < 0:
        return format_cents(cents, currency)
    return f"+{format_cents(cents, currency)}"


def format_percent(value: float) -> str:
    """One-decimal percentage; non-finite values render as ``0.0%``."""
    if math.isnan(value) or math.isinf(value):
        return "0.0%"
    return f"{value:.1f}%"


def format_date(value: datetime) -> str:
    """UTC calendar date in ISO form."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date().isoformat()


def quick_ratio_label(quick_ratio: float) -> str:
    if math.isinf(quick_ratio):
        return "no churn"
    if quick_ratio >= 4:
        return "excellent"
    if quick_ratio >= 2:
        return "healthy"
    if quick_ratio >= 1:
        return "okay"
    return "critical"


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def mrr_to_markdown(result: MrrResult) -> str:
    return "\n".join(
        [
            "# Monthly Recurring Revenue (MRR)",
            "",
            f"**Total MRR:** {format_cents(result.total, result.currency)}",
            f"**Currency:** {result.currency.upper()}",
            f"**Subscriptions:** {result.contributing_count}",
            f"**As of:** {result.as_of.isoformat()}",
            "",
            "## Status Breakdown",
            f"- Active: {result.status_breakdown.active}",
            f"- Trialing: {result.status_breakdown.trialing}",
            f"- Past Due: {result.status_breakdown.past_due}",
        ]
    )


def churn_to_markdown(result: ChurnResult) -> str:
    return "\n".join(
        [
            "# Churn Analysis",
            "",
            f"**Period:** {result.period_days} days "
            f"({format_date(result.period_start)} to {format_date(result.period_end)})",
            "",
            "## Churn Rates",
            f"- **Customer Churn Rate:** {format_percent(result.customer_churn_rate)}",
            f"- **Revenue Churn Rate:** {format_percent(result.revenue_churn_rate)}",
            "",
            "## Churned Metrics",
            f"- **Churned Customers:** {result.churned_count}",
            f"- **Churned MRR:** {format_cents(result.churned_revenue, result.currency)}",
            "",
            "## Starting Metrics",
            f"- **Starting Customers:** {result.starting_count}",
            f"- **Starting MRR:** {format_cents(result.starting_revenue, result.currency)}",
        ]
    )


def plan_breakdown_to_markdown(result: RevenueByPlanResult) -> str:
    lines = [
        "# Revenue by Plan",
        "",
        f"**Total MRR:** {format_cents(result.total, result.currency)}",
        f"**Currency:** {result.currency.upper()}",
        "",
        "| Plan | Product | Price | Interval | Subscribers | MRR | % of Total |",
        "|------|---------|-------|----------|-------------|-----|------------|",
    ]
    for plan in result.plans:
        cells = [
            plan.plan_name,
            plan.product_name,
            format_cents(plan.unit_amount, result.currency),
            plan.interval,
            str(plan.subscriber_count),
            format_cents(plan.revenue, result.currency),
            format_percent(plan.percent_of_total),
        ]
        lines.append(f"| {' | '.join(cells)} |")
    return "\n".join(lines)


def subscriber_stats_to_markdown(result: SubscriberStats) -> str:
    sign = "+" if result.net_change >= 0 else ""
    return "\n".join(
        [
            "# Subscriber Statistics",
            "",
            f"**Period:** Last {result.period_days} days",
            "",
            "## Current Status",
            f"- **Total Active Subscribers:** {result.total_active}",
            f"- **Trialing:** {result.trialing}",
            f"- **Past Due:** {result.past_due}",
            "",
            "## Period Changes",
            f"- **New Subscribers:** {result.new_this_period}",
            f"- **Churned Subscribers:** {result.churned_this_period}",
            f"- **Net Change:** {sign}{result.net_change}",
        ]
    )


def changes_to_markdown(result: RecentChangesResult) -> str:
    lines = [
        "# Recent Subscription Changes",
        "",
        f"**Period:** Last {result.days} days",
        "",
        "## Summary",
        f"- New: {result.summary.new_count}",
        f"- Canceled: {result.summary.canceled_count}",
        f"- Upgraded: {result.summary.upgraded_count}",
        f"- Downgraded: {result.summary.downgraded_count}",
        f"- Failed Payments: {result.summary.failed_payment_count}",
    ]

    if not result.changes:
        lines.extend(["", "_No changes in this period._"])
        return "\n".join(lines)

    lines.extend(["", "## Recent Events"])
    for change_type, heading in _CHANGE_SECTIONS:
        section = [change for change in result.changes if change.type is change_type]
        if not section:
            continue
        lines.extend(["", heading])
        for change in section:
            amount = format_cents(change.amount or 0, change.currency)
            lines.append(
                f"- **{change.customer_email}** - {change.plan_name} ({amount}) - {format_date(change.date)}"
            )
    return "\n".join(lines)


def mrr_movement_to_markdown(result: MrrMovementResult) -> str:
    currency = result.currency
    return "\n".join(
        [
            "# MRR Movement",
            "",
            f"**Period:** Last {result.period_days} days",
            f"**Net New MRR:** {format_signed_cents(result.net_new, currency)}",
            "",
            "## Breakdown",
            f"- **New MRR:** +{format_cents(result.new, currency)}",
            f"- **Expansion MRR:** +{format_cents(result.expansion, currency)}",
            f"- **Contraction MRR:** -{format_cents(result.contraction, currency)}",
            f"- **Churned MRR:** -{format_cents(result.churned, currency)}",
        ]
    )


def failed_payments_to_markdown(result: FailedPaymentsResult) -> str:
    lines = [
        "# Failed Payments",
        "",
        f"**Total at risk:** {format_cents(result.total_at_risk, result.currency)}",
        f"**Failed invoices:** {len(result.failed_payments)}",
    ]
    if not result.failed_payments:
        lines.extend(["", "_No failed payments — all invoices are healthy._"])
        return "\n".join(lines)

    lines.extend(
        [
            "",
            "| Customer | Amount | Reason | Attempts | Last Attempt | Plan |",
            "|----------|--------|--------|----------|--------------|------|",
        ]
    )
    for payment in result.failed_payments:
        last_attempt = format_date(payment.last_attempt_at) if payment.last_attempt_at else "—"
        lines.append(
            f"| {payment.customer_email} | {format_cents(payment.amount, payment.currency)} "
            f"| {payment.failure_reason} | {payment.attempt_count} | {last_attempt} "
            f"| {payment.plan_name or '—'} |"
        )
    return "\n".join(lines)


def dashboard_to_markdown(result: DashboardResult) -> str:
    movement = result.movement
    currency = result.mrr.currency
    lines = [
        f"# Dashboard — {format_date(result.mrr.as_of)}",
        "",
        f"**MRR:** {format_cents(result.mrr.total, currency)} "
        f"({format_signed_cents(movement.net_new, movement.currency)} in the last {movement.period_days} days)",
        f"**Subscriptions:** {result.mrr.contributing_count} active, "
        f"{result.mrr.status_breakdown.trialing} trialing, "
        f"{result.mrr.status_breakdown.past_due} past due",
        "",
        f"## MRR Movement (last {movement.period_days} days)",
        f"- New: +{format_cents(movement.new, movement.currency)}",
        f"- Expansion: +{format_cents(movement.expansion, movement.currency)}",
        f"- Contraction: -{format_cents(movement.contraction, movement.currency)}",
        f"- Churned: -{format_cents(movement.churned, movement.currency)}",
        f"- **Net:** {format_signed_cents(movement.net_new, movement.currency)}",
        "",
    ]

    quick_ratio = result.quick_ratio
    rendered_ratio = "∞" if math.isinf(quick_ratio) else f"{quick_ratio:.1f}"
    lines.append(f"**Quick Ratio:** {rendered_ratio} ({quick_ratio_label(quick_ratio)})")

    lines.append("")
    if result.failed_payments:
        at_risk = sum(payment.amount for payment in result.failed_payments)
        lines.append(
            f"## Failed Payments ({len(result.failed_payments)} — {format_cents(at_risk, currency)} at risk)"
        )
        for payment in result.failed_payments[:_FAILED_PAYMENT_LIMIT]:
            lines.append(
                f"- **{payment.customer_email}** — {format_cents(payment.amount, payment.currency)} "
                f"— {payment.failure_reason} — attempt {payment.attempt_count}"
            )
        if len(result.failed_payments) > _FAILED_PAYMENT_LIMIT:
            lines.append(f"- _...and {len(result.failed_payments) - _FAILED_PAYMENT_LIMIT} more_")
    else:
        lines.extend(["## Failed Payments", "_None — all payments healthy._"])

    lines.append("")
    if result.expiring_trials:
        potential = sum(trial.value_if_converted for trial in result.expiring_trials)
        lines.append(
            f"## Trials Expiring Soon ({len(result.expiring_trials)} — "
            f"{format_cents(potential, currency)} potential MRR)"
        )
        for trial in result.expiring_trials:
            plural = "" if trial.days_remaining == 1 else "s"
            lines.append(
                f"- **{trial.customer_email}** — {trial.plan_name} — "
                f"{trial.days_remaining} day{plural} left — "
                f"{format_cents(trial.value_if_converted, currency)}/mo"
            )
    else:
        lines.extend(["## Trials Expiring Soon", "_No trials expiring soon._"])

    return "\n".join(lines)
