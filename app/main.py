"""
app/main.py

FastAPI application factory for the billing metrics API.

Run with ``uvicorn app.main:create_app --factory``.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from app.config import load_env_files

logger = logging.getLogger(__name__)


def _startup_errors() -> list[str]:
    errors: list[str] = []

    api_key = os.getenv("STRIPE_SECRET_KEY", "").strip()
    if not api_key:
        errors.append("STRIPE_SECRET_KEY is not set; a Stripe secret API key is required.")
    elif not api_key.startswith("sk_"):
        errors.append(
            "STRIPE_SECRET_KEY has an invalid format; expected sk_test_... or sk_live_..."
        )

    page_size = os.getenv("STRIPE_PAGE_SIZE", "").strip()
    if page_size and not page_size.isdigit():
        errors.append(f"STRIPE_PAGE_SIZE={page_size!r} is not a positive integer.")

    return errors


def _validate_env() -> None:
    """
    Fail fast on a misconfigured environment.

    Every problem is reported in one ``RuntimeError`` rather than one per
    restart.
    """

    load_env_files()
    errors = _startup_errors()
    if errors:
        raise RuntimeError(
            "Billing metrics API cannot start:\n" + "\n".join(f"  - {error}" for error in errors)
        )


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Validate the environment and build the application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Billing Metrics API",
        version="0.1.0",
    )

    from app.api.routers import metrics_router

    application.include_router(metrics_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    logger.info("Billing metrics API initialised")
    return application
