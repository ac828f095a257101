"""
Print one billing metric report as markdown.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable

from app.config import (
    BillingAPISettings,
    get_billing_api_settings,
    get_external_http_settings,
    get_metrics_settings,
    load_env_files,
)
from app.connectors.base import BillingAPIError
from app.connectors.stripe_connector import StripeConnector
from app.formatting.markdown import (
    changes_to_markdown,
    churn_to_markdown,
    dashboard_to_markdown,
    failed_payments_to_markdown,
    mrr_movement_to_markdown,
    mrr_to_markdown,
    plan_breakdown_to_markdown,
    subscriber_stats_to_markdown,
)
from app.services.metrics_service import MetricsService
from kpi.currency import MixedCurrencyError

REPORTS: dict[str, Callable[[MetricsService, int | None], str]] = {
    "mrr": lambda service, days: mrr_to_markdown(service.mrr()),
    "churn": lambda service, days: churn_to_markdown(service.churn(days)),
    "revenue-by-plan": lambda service, days: plan_breakdown_to_markdown(service.revenue_by_plan()),
    "subscribers": lambda service, days: subscriber_stats_to_markdown(service.subscriber_stats(days)),
    "recent-changes": lambda service, days: changes_to_markdown(service.recent_changes(days)),
    "mrr-movement": lambda service, days: mrr_movement_to_markdown(service.mrr_movement(days)),
    "dashboard": lambda service, days: dashboard_to_markdown(service.dashboard()),
    "failed-payments": lambda service, days: failed_payments_to_markdown(service.failed_payments(days)),
}


def _period_days(raw: str) -> int:
    value = int(raw)
    if not 1 <= value <= 365:
        raise argparse.ArgumentTypeError("period must be between 1 and 365 days")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compute a billing metric report from Stripe.")
    parser.add_argument(
        "--metric",
        choices=sorted(REPORTS),
        default="dashboard",
        help="Report to print (default: dashboard).",
    )
    parser.add_argument(
        "--period-days",
        dest="period_days",
        type=_period_days,
        default=None,
        help="Look-back window in days for period-based reports.",
    )
    parser.add_argument(
        "--key",
        dest="api_key",
        default=None,
        help="Stripe secret API key (overrides STRIPE_SECRET_KEY).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_env_files()
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").strip().upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )

    defaults = get_billing_api_settings()
    api_key = args.api_key or defaults.api_key
    if not api_key:
        print("Error: Stripe API key is required (STRIPE_SECRET_KEY or --key).", file=sys.stderr)
        return 1
    if not api_key.startswith("sk_"):
        print("Error: Invalid Stripe API key format. Expected key starting with sk_.", file=sys.stderr)
        return 1

    connector = StripeConnector(
        settings=BillingAPISettings(api_key=api_key, base_url=defaults.base_url, page_size=defaults.page_size),
        http_settings=get_external_http_settings(),
    )
    service = MetricsService(source=connector, settings=get_metrics_settings())

    try:
        print(REPORTS[args.metric](service, args.period_days))
    except (BillingAPIError, MixedCurrencyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
