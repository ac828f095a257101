"""
app/config.py

Settings for the billing provider, outbound HTTP and metric windows.

Every value comes from the process environment, optionally seeded from
``.env`` / ``.env.local`` at the project root.  Getters are cached; call
``cache_clear()`` on them after changing the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, TypeVar

DEFAULT_BILLING_API_BASE_URL = "https://api.stripe.com/v1"

ENV_FILENAMES = (".env", ".env.local")

_Number = TypeVar("_Number", int, float)


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files() -> None:
    """
    Seed ``os.environ`` from the project's env files.

    Variables already present in the process environment win over the
    files, and ``.env`` is read before ``.env.local``.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in ENV_FILENAMES:
        env_path = project_root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None and parsed[0] not in os.environ:
                os.environ[parsed[0]] = parsed[1]


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_env_files()


def _read_env(name: str) -> str | None:
    """Stripped value of *name*, or ``None`` when unset or blank."""

    _load_env_once()
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _get_number_env(name: str, default: _Number, cast: Callable[[str], _Number]) -> _Number:
    raw_value = _read_env(name)
    if raw_value is None:
        return default
    try:
        return cast(raw_value)
    except ValueError:
        return default


def _get_int_env(name: str, default: int) -> int:
    return _get_number_env(name, default, int)


def _get_float_env(name: str, default: float) -> float:
    return _get_number_env(name, default, float)


def _get_str_env(name: str, default: str) -> str:
    raw_value = _read_env(name)
    return default if raw_value is None else raw_value


@dataclass(frozen=True)
class BillingAPISettings:
    """
    Billing provider (Stripe) API settings.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BILLING_API_BASE_URL
    page_size: int = 100


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Timeout and retry behaviour for calls to the billing provider.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 20.0


@dataclass(frozen=True)
class MetricsSettings:
    """
    Default windows and fallbacks used when computing metrics.
    """

    default_period_days: int = 30
    dashboard_period_days: int = 7
    trial_window_days: int = 3
    failed_payment_days: int = 30
    fallback_currency: str = "usd"


@lru_cache(maxsize=1)
def get_billing_api_settings() -> BillingAPISettings:
    """
    Return billing provider API settings from environment variables.
    """

    return BillingAPISettings(
        api_key=_read_env("STRIPE_SECRET_KEY"),
        base_url=_get_str_env("STRIPE_API_BASE_URL", DEFAULT_BILLING_API_BASE_URL).rstrip("/"),
        page_size=min(100, max(1, _get_int_env("STRIPE_PAGE_SIZE", 100))),
    )


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return billing provider HTTP settings from EXTERNAL_HTTP_* variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 20.0)),
    )


@lru_cache(maxsize=1)
def get_metrics_settings() -> MetricsSettings:
    """
    Return metric window settings from environment variables.
    """

    return MetricsSettings(
        default_period_days=min(365, max(1, _get_int_env("METRICS_DEFAULT_PERIOD_DAYS", 30))),
        dashboard_period_days=min(365, max(1, _get_int_env("METRICS_DASHBOARD_PERIOD_DAYS", 7))),
        trial_window_days=max(1, _get_int_env("METRICS_TRIAL_WINDOW_DAYS", 3)),
        failed_payment_days=min(365, max(1, _get_int_env("METRICS_FAILED_PAYMENT_DAYS", 30))),
        fallback_currency=_get_str_env("METRICS_FALLBACK_CURRENCY", "usd").lower(),
    )
