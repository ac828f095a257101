"""
app/connectors/stripe_connector.py

Stripe REST connector producing normalized billing entities.

Lists are walked with cursor pagination (``has_more`` / ``starting_after``).
Records that cannot be normalized are logged and skipped so that one bad
object never aborts a fetch.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterator, Sequence

import requests

from app.config import BillingAPISettings, ExternalHTTPSettings
from app.connectors.base import BaseHTTPConnector, BillingAPIError
from app.domain.billing import (
    BillingEvent,
    EventType,
    FailedPayment,
    LineItem,
    Subscription,
    SubscriptionStatus,
)
from app.logging_utils import log_event
from app.mappers.stripe_mapper import (
    normalize_event,
    normalize_failed_invoice,
    normalize_subscription,
)
from kpi.period import period_cutoff, resolve_now

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIPTION_STATUSES: tuple[SubscriptionStatus, ...] = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.PAST_DUE,
)

RELEVANT_EVENT_TYPES: frozenset[str] = frozenset(
    {
        EventType.SUBSCRIPTION_CREATED.value,
        EventType.SUBSCRIPTION_UPDATED.value,
        EventType.SUBSCRIPTION_DELETED.value,
        EventType.INVOICE_PAYMENT_FAILED.value,
    }
)

_SUBSCRIPTION_EXPAND = ("data.customer", "data.discount.coupon")


class StripeConnector(BaseHTTPConnector):
    """
    Fetches subscriptions, events and failed invoices from Stripe.
    """

    def __init__(
        self,
        *,
        settings: BillingAPISettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.api_key or not settings.api_key.startswith("sk_"):
            raise BillingAPIError(
                "authentication",
                "Invalid Stripe API key format. Expected key starting with sk_",
            )
        super().__init__(source="stripe", http_settings=http_settings, session=session)
        self._settings = settings
        self._headers = {"Authorization": f"Bearer {settings.api_key}"}

    # ------------------------------------------------------------------
    # Public fetches
    # ------------------------------------------------------------------

    def fetch_subscriptions(
        self,
        statuses: Sequence[SubscriptionStatus] = DEFAULT_SUBSCRIPTION_STATUSES,
    ) -> list[Subscription]:
        """
        Every subscription whose status is in *statuses*.

        Stripe is queried with ``status=all`` and filtered locally so that
        several statuses can be requested in one walk.
        """

        wanted = {SubscriptionStatus(status).value for status in statuses}
        raw = [
            payload
            for payload in self._list("subscriptions", [("status", "all"), *self._expand(_SUBSCRIPTION_EXPAND)])
            if payload.get("status") in wanted
        ]
        return self._normalize_subscriptions(raw)

    def fetch_canceled_subscriptions(
        self,
        since_days: int,
        *,
        now: datetime | None = None,
    ) -> list[Subscription]:
        """
        Subscriptions canceled within the last *since_days*.
        """

        cutoff = int(period_cutoff(resolve_now(now), since_days).timestamp())
        raw = [
            payload
            for payload in self._list("subscriptions", [("status", "canceled"), *self._expand(_SUBSCRIPTION_EXPAND)])
            if payload.get("canceled_at") and int(payload["canceled_at"]) >= cutoff
        ]
        return self._normalize_subscriptions(raw)

    def fetch_recent_events(
        self,
        days: int,
        *,
        now: datetime | None = None,
    ) -> list[BillingEvent]:
        """
        Subscription lifecycle and failed-payment events from the last *days*.

        Customer emails missing from the event payload are resolved with
        one customer lookup per distinct customer.
        """

        cutoff = int(period_cutoff(resolve_now(now), days).timestamp())
        events: list[BillingEvent] = []
        for payload in self._list("events", [("created[gte]", cutoff)]):
            if payload.get("type") not in RELEVANT_EVENT_TYPES:
                continue
            try:
                events.append(normalize_event(payload))
            except (ValueError, TypeError) as exc:
                logger.warning("Failed to normalize Stripe event id=%s error=%s", payload.get("id"), exc)

        unresolved = {event.customer_id for event in events if event.customer_id and not event.customer_email}
        if unresolved:
            emails = self._fetch_customer_emails(unresolved)
            events = [
                replace(event, customer_email=emails.get(event.customer_id))
                if not event.customer_email and event.customer_id in emails
                else event
                for event in events
            ]

        log_event(logger, logging.INFO, "stripe_events_fetched", days=days, count=len(events))
        return events

    def fetch_failed_payments(
        self,
        days: int,
        *,
        now: datetime | None = None,
    ) -> list[FailedPayment]:
        """
        Open invoices from the last *days* with at least one failed attempt.
        """

        cutoff = int(period_cutoff(resolve_now(now), days).timestamp())
        params = [("status", "open"), ("created[gte]", cutoff), *self._expand(("data.customer", "data.charge"))]
        failed: list[FailedPayment] = []
        for payload in self._list("invoices", params):
            if int(payload.get("attempt_count") or 0) < 1 or payload.get("paid"):
                continue
            try:
                failed.append(normalize_failed_invoice(payload))
            except (ValueError, TypeError) as exc:
                logger.warning("Failed to normalize Stripe invoice id=%s error=%s", payload.get("id"), exc)

        failed.sort(key=lambda payment: payment.amount, reverse=True)
        log_event(logger, logging.INFO, "stripe_failed_payments_fetched", days=days, count=len(failed))
        return failed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _expand(fields: Sequence[str]) -> list[tuple[str, str]]:
        return [("expand[]", field) for field in fields]

    def _list(self, resource: str, params: list[tuple[str, Any]]) -> Iterator[dict[str, Any]]:
        """
        Yield every object of a Stripe list endpoint, page by page.
        """

        url = f"{self._settings.base_url}/{resource}"
        starting_after: str | None = None
        while True:
            page_params = [*params, ("limit", self._settings.page_size)]
            if starting_after:
                page_params.append(("starting_after", starting_after))

            page = self._request_json(method="GET", url=url, params=page_params, headers=self._headers)
            data = page.get("data", []) if isinstance(page, dict) else []
            yield from data

            if not data or not page.get("has_more"):
                return
            starting_after = data[-1].get("id")

    def _normalize_subscriptions(self, raw: list[dict[str, Any]]) -> list[Subscription]:
        subscriptions: list[Subscription] = []
        product_ids: set[str] = set()
        for payload in raw:
            try:
                subscriptions.append(normalize_subscription(payload))
            except (ValueError, TypeError) as exc:
                logger.warning("Failed to normalize Stripe subscription id=%s error=%s", payload.get("id"), exc)
                continue
            for item in (payload.get("items") or {}).get("data") or []:
                product = (item.get("price") or {}).get("product")
                if isinstance(product, str) and product:
                    product_ids.add(product)

        if product_ids:
            names = self._fetch_product_names(product_ids)
            subscriptions = [_with_product_names(sub, names) for sub in subscriptions]

        log_event(logger, logging.INFO, "stripe_subscriptions_fetched", count=len(subscriptions))
        return subscriptions

    def _retrieve(self, resource: str, object_id: str) -> dict[str, Any] | None:
        """
        Fetch one object, returning ``None`` when it no longer exists.
        """

        try:
            payload = self._request_json(
                method="GET",
                url=f"{self._settings.base_url}/{resource}/{object_id}",
                headers=self._headers,
            )
        except BillingAPIError as exc:
            if exc.kind != "invalid_request":
                raise
            logger.info("Stripe %s %s could not be retrieved: %s", resource, object_id, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def _fetch_product_names(self, product_ids: set[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        for product_id in sorted(product_ids):
            product = self._retrieve("products", product_id)
            if product and product.get("name"):
                names[product_id] = product["name"]
        return names

    def _fetch_customer_emails(self, customer_ids: set[str]) -> dict[str, str]:
        emails: dict[str, str] = {}
        for customer_id in sorted(customer_ids):
            customer = self._retrieve("customers", customer_id)
            if customer and customer.get("email"):
                emails[customer_id] = customer["email"]
        return emails


def _resolved_item(item: LineItem, names: dict[str, str]) -> LineItem:
    resolved = names.get(item.product_name) or (names.get(item.price_id) if item.price_id else None)
    if not resolved:
        return item
    suffix = f" x{item.interval_count}" if item.interval_count > 1 else ""
    return replace(
        item,
        product_name=resolved,
        plan_name=f"{resolved} ({item.interval.value}{suffix})",
    )


def _with_product_names(subscription: Subscription, names: dict[str, str]) -> Subscription:
    return replace(subscription, items=tuple(_resolved_item(item, names) for item in subscription.items))
