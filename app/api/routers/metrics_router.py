"""
app/api/routers/metrics_router.py

Billing metric report endpoints.

Every endpoint takes a fresh snapshot from the billing provider, computes
one metric and returns it both as structured data and as markdown.

Error mapping
-------------
MixedCurrencyError            -> 422
BillingAPIError authentication -> 401
BillingAPIError permission     -> 403
BillingAPIError rate_limit     -> 429
any other BillingAPIError      -> 502
"""

from __future__ import annotations

import logging
import math
from typing import Callable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.connectors.base import BillingAPIError
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
from app.schemas.metrics import MetricReportResponse, result_payload
from app.services.metrics_service import MetricsService, get_metrics_service
from kpi.currency import MixedCurrencyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/metrics", tags=["metrics"])

T = TypeVar("T")

_STATUS_BY_ERROR_KIND: dict[str, int] = {
    "authentication": status.HTTP_401_UNAUTHORIZED,
    "permission": status.HTTP_403_FORBIDDEN,
    "rate_limit": status.HTTP_429_TOO_MANY_REQUESTS,
}


def _run(metric: str, compute: Callable[[], T]) -> T:
    """
    Execute one metric computation, translating domain errors to HTTP.
    """

    try:
        return compute()
    except MixedCurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except BillingAPIError as exc:
        logger.warning("Metric %s failed: billing API error kind=%s: %s", metric, exc.kind, exc)
        raise HTTPException(
            status_code=_STATUS_BY_ERROR_KIND.get(exc.kind, status.HTTP_502_BAD_GATEWAY),
            detail=str(exc),
        ) from exc


@router.get("/mrr", response_model=MetricReportResponse)
def get_mrr(
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    """
    Current MRR from active and past-due subscriptions.
    """

    result = _run("mrr", service.mrr)
    return MetricReportResponse(
        metric="mrr",
        currency=result.currency,
        data=result_payload(result),
        report=mrr_to_markdown(result),
    )


@router.get("/churn", response_model=MetricReportResponse)
def get_churn(
    period_days: int | None = Query(default=None, ge=1, le=365),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    """
    Customer and revenue churn over the last ``period_days``.
    """

    result = _run("churn", lambda: service.churn(period_days))
    return MetricReportResponse(
        metric="churn",
        currency=result.currency,
        data=result_payload(result),
        report=churn_to_markdown(result),
    )


@router.get("/revenue-by-plan", response_model=MetricReportResponse)
def get_revenue_by_plan(
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    result = _run("revenue_by_plan", service.revenue_by_plan)
    return MetricReportResponse(
        metric="revenue_by_plan",
        currency=result.currency,
        data=result_payload(result),
        report=plan_breakdown_to_markdown(result),
    )


@router.get("/subscribers", response_model=MetricReportResponse)
def get_subscriber_stats(
    period_days: int | None = Query(default=None, ge=1, le=365),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    result = _run("subscriber_stats", lambda: service.subscriber_stats(period_days))
    return MetricReportResponse(
        metric="subscriber_stats",
        data=result_payload(result),
        report=subscriber_stats_to_markdown(result),
    )


@router.get("/recent-changes", response_model=MetricReportResponse)
def get_recent_changes(
    days: int | None = Query(default=None, ge=1, le=90),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    result = _run("recent_changes", lambda: service.recent_changes(days))
    return MetricReportResponse(
        metric="recent_changes",
        data=result_payload(result),
        report=changes_to_markdown(result),
    )


@router.get("/mrr-movement", response_model=MetricReportResponse)
def get_mrr_movement(
    period_days: int | None = Query(default=None, ge=1, le=90),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    result = _run("mrr_movement", lambda: service.mrr_movement(period_days))
    return MetricReportResponse(
        metric="mrr_movement",
        currency=result.currency,
        data=result_payload(result),
        report=mrr_movement_to_markdown(result),
    )


@router.get("/dashboard", response_model=MetricReportResponse)
def get_dashboard(
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    """
    The morning check: MRR, movement, failed payments, trials and Quick Ratio.

    An infinite Quick Ratio is reported as ``null`` with
    ``quick_ratio_no_churn`` set.
    """

    result = _run("dashboard", service.dashboard)
    data = result_payload(result)
    data["quick_ratio_no_churn"] = math.isinf(result.quick_ratio)
    return MetricReportResponse(
        metric="dashboard",
        currency=result.mrr.currency,
        data=data,
        report=dashboard_to_markdown(result),
    )


@router.get("/failed-payments", response_model=MetricReportResponse)
def get_failed_payments(
    days: int | None = Query(default=None, ge=1, le=90),
    service: MetricsService = Depends(get_metrics_service),
) -> MetricReportResponse:
    result = _run("failed_payments", lambda: service.failed_payments(days))
    return MetricReportResponse(
        metric="failed_payments",
        currency=result.currency,
        data=result_payload(result),
        report=failed_payments_to_markdown(result),
    )
