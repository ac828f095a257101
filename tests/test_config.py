"""
tests/test_config.py

Environment-driven settings and their clamping.
"""

from __future__ import annotations

import os

import pytest

from app import config


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    for name in (
        "STRIPE_SECRET_KEY",
        "STRIPE_API_BASE_URL",
        "STRIPE_PAGE_SIZE",
        "EXTERNAL_HTTP_MAX_RETRIES",
        "EXTERNAL_HTTP_TIMEOUT_SECONDS",
        "METRICS_DEFAULT_PERIOD_DAYS",
        "METRICS_FALLBACK_CURRENCY",
        "METRICS_TRIAL_WINDOW_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)
    # Pretend .env files were already loaded so the process env is authoritative.
    monkeypatch.setattr(config, "_load_env_once", lambda: None)
    config.get_billing_api_settings.cache_clear()
    config.get_external_http_settings.cache_clear()
    config.get_metrics_settings.cache_clear()
    yield
    config.get_billing_api_settings.cache_clear()
    config.get_external_http_settings.cache_clear()
    config.get_metrics_settings.cache_clear()


class TestBillingAPISettings:
    def test_defaults(self) -> None:
        settings = config.get_billing_api_settings()
        assert settings.api_key is None
        assert settings.base_url == "https://api.stripe.com/v1"
        assert settings.page_size == 100

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("STRIPE_SECRET_KEY", "  sk_test_abc  ")
        monkeypatch.setenv("STRIPE_API_BASE_URL", "http://localhost:12111/v1/")
        monkeypatch.setenv("STRIPE_PAGE_SIZE", "25")
        settings = config.get_billing_api_settings()
        assert settings.api_key == "sk_test_abc"
        assert settings.base_url == "http://localhost:12111/v1"
        assert settings.page_size == 25

    @pytest.mark.parametrize("raw, expected", [("0", 1), ("500", 100), ("abc", 100)])
    def test_page_size_clamped(self, monkeypatch, raw: str, expected: int) -> None:
        monkeypatch.setenv("STRIPE_PAGE_SIZE", raw)
        assert config.get_billing_api_settings().page_size == expected

    def test_cached(self, monkeypatch) -> None:
        first = config.get_billing_api_settings()
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_later")
        assert config.get_billing_api_settings() is first


class TestExternalHTTPSettings:
    def test_defaults(self) -> None:
        settings = config.get_external_http_settings()
        assert settings.timeout_seconds == 15.0
        assert settings.max_retries == 2

    def test_negative_retries_clamped(self, monkeypatch) -> None:
        monkeypatch.setenv("EXTERNAL_HTTP_MAX_RETRIES", "-3")
        monkeypatch.setenv("EXTERNAL_HTTP_TIMEOUT_SECONDS", "0.2")
        settings = config.get_external_http_settings()
        assert settings.max_retries == 0
        assert settings.timeout_seconds == 1.0


class TestMetricsSettings:
    def test_defaults(self) -> None:
        settings = config.get_metrics_settings()
        assert settings.default_period_days == 30
        assert settings.dashboard_period_days == 7
        assert settings.trial_window_days == 3
        assert settings.failed_payment_days == 30
        assert settings.fallback_currency == "usd"

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("METRICS_DEFAULT_PERIOD_DAYS", "9999")
        monkeypatch.setenv("METRICS_FALLBACK_CURRENCY", "EUR")
        monkeypatch.setenv("METRICS_TRIAL_WINDOW_DAYS", "0")
        settings = config.get_metrics_settings()
        assert settings.default_period_days == 365
        assert settings.fallback_currency == "eur"
        assert settings.trial_window_days == 1


class TestLoadEnvFiles:
    def test_reads_without_overwriting(self, monkeypatch, tmp_path) -> None:
        (tmp_path / ".env").write_text(
            "# comment\nBILLING_TEST_NEW=from_file\nBILLING_TEST_SET='ignored'\nmalformed line\n",
            encoding="utf-8",
        )
        fake_module = tmp_path / "app" / "config.py"
        fake_module.parent.mkdir()
        fake_module.write_text("", encoding="utf-8")
        monkeypatch.setattr(config, "__file__", str(fake_module))
        monkeypatch.setenv("BILLING_TEST_SET", "from_env")
        monkeypatch.delenv("BILLING_TEST_NEW", raising=False)

        config.load_env_files()

        assert os.environ["BILLING_TEST_NEW"] == "from_file"
        assert os.environ["BILLING_TEST_SET"] == "from_env"
        monkeypatch.delenv("BILLING_TEST_NEW")
