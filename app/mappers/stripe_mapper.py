"""
app/mappers/stripe_mapper.py

Normalization of raw Stripe API objects into billing domain entities.

Defaults applied to incomplete provider payloads
------------------------------------------------
quantity        -> 1
unit_amount     -> 0
interval        -> month
interval_count  -> 1
plan name       -> price nickname, else "<product> (<interval>)"
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from app.domain.billing import (
    BillingEvent,
    BillingInterval,
    Discount,
    EventType,
    FailedPayment,
    LineItem,
    Subscription,
    SubscriptionStatus,
)


class BillingRecordError(ValueError):
    """
    Raised when a provider object lacks a field required to build an entity.
    """


def timestamp_to_datetime(value: Any) -> datetime | None:
    """Convert a unix timestamp in seconds to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _require(payload: Mapping[str, Any], key: str, kind: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise BillingRecordError(f"{kind} is missing required field '{key}'.")
    return value


def _object_id(value: Any) -> str | None:
    """Return the id of an optionally-expanded reference."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get("id")
    return str(value)


def _customer_email(customer: Any) -> str | None:
    if isinstance(customer, Mapping):
        return customer.get("email") or None
    return None


def product_name_for(price: Mapping[str, Any]) -> str:
    product = price.get("product")
    if isinstance(product, Mapping):
        return product.get("name") or "Unknown Product"
    if isinstance(product, str) and product:
        return product
    return "Unknown Product"


def plan_name_for(price: Mapping[str, Any], product_name: str) -> str:
    nickname = price.get("nickname")
    if nickname:
        return nickname
    recurring = price.get("recurring") or {}
    return f"{product_name} ({recurring.get('interval') or 'one-time'})"


def normalize_line_item(item: Mapping[str, Any]) -> LineItem:
    price = item.get("price") or {}
    recurring = price.get("recurring") or {}
    product_name = product_name_for(price)
    return LineItem(
        unit_amount=int(price.get("unit_amount") or 0),
        quantity=int(item.get("quantity") or 1),
        interval=BillingInterval(recurring.get("interval") or "month"),
        interval_count=int(recurring.get("interval_count") or 1),
        plan_name=plan_name_for(price, product_name),
        product_name=product_name,
        price_id=price.get("id"),
    )


def normalize_discount(discount: Mapping[str, Any] | None) -> Discount | None:
    if not discount:
        return None
    coupon = discount.get("coupon") or {}
    return Discount(
        coupon_id=coupon.get("id") or "",
        percent_off=coupon.get("percent_off") or None,
        amount_off=coupon.get("amount_off") or None,
    )


def normalize_subscription(payload: Mapping[str, Any]) -> Subscription:
    """
    Build a :class:`Subscription` from a Stripe subscription object.

    Raises
    ------
    BillingRecordError
        When an identifier, status, currency or creation time is missing.
    ValueError
        When the status or an item's interval is outside the known sets.
    """
    subscription_id = _require(payload, "id", "Subscription")
    customer = _require(payload, "customer", f"Subscription {subscription_id}")
    items_payload = (payload.get("items") or {}).get("data") or []

    return Subscription(
        id=subscription_id,
        customer_id=_object_id(customer) or "",
        customer_email=_customer_email(customer),
        status=SubscriptionStatus(_require(payload, "status", f"Subscription {subscription_id}")),
        created_at=timestamp_to_datetime(_require(payload, "created", f"Subscription {subscription_id}")),
        canceled_at=timestamp_to_datetime(payload.get("canceled_at")),
        cancel_at=timestamp_to_datetime(payload.get("cancel_at")),
        trial_end=timestamp_to_datetime(payload.get("trial_end")),
        current_period_end=timestamp_to_datetime(payload.get("current_period_end")),
        currency=str(_require(payload, "currency", f"Subscription {subscription_id}")).lower(),
        discount=normalize_discount(payload.get("discount")),
        items=tuple(normalize_line_item(item) for item in items_payload),
    )


def _first_item_amount(items: Any) -> tuple[str | None, int | None]:
    """Plan name and billed amount of the first item in an items list."""
    data = (items or {}).get("data") if isinstance(items, Mapping) else None
    if not data:
        return None, None
    item = data[0]
    price = item.get("price") or {}
    plan_name = price.get("nickname") or price.get("id")
    amount = int(price.get("unit_amount") or 0) * int(item.get("quantity") or 1)
    return plan_name, amount


def normalize_event(payload: Mapping[str, Any]) -> BillingEvent:
    """
    Build a :class:`BillingEvent` from a Stripe event object.

    Subscription events take plan and amount from the first item; updates
    also read the previous first item from ``previous_attributes``.
    Failed-payment events take the invoice's ``amount_due``.
    """
    event_id = _require(payload, "id", "Event")
    raw_type = str(_require(payload, "type", f"Event {event_id}"))
    data = payload.get("data") or {}
    obj = data.get("object") or {}

    customer_id: str | None = None
    customer_email: str | None = None
    subscription_id: str | None = None
    plan_name: str | None = None
    amount: int | None = None
    previous_plan_name: str | None = None
    previous_amount: int | None = None
    currency = str(obj["currency"]).lower() if obj.get("currency") else None

    if raw_type.startswith("customer.subscription"):
        subscription_id = obj.get("id")
        customer_id = _object_id(obj.get("customer"))
        customer_email = _customer_email(obj.get("customer"))
        plan_name, amount = _first_item_amount(obj.get("items"))
        previous = data.get("previous_attributes") or {}
        if raw_type == EventType.SUBSCRIPTION_UPDATED.value and previous:
            previous_plan_name, previous_amount = _first_item_amount(previous.get("items"))
    elif raw_type == EventType.INVOICE_PAYMENT_FAILED.value:
        customer_id = _object_id(obj.get("customer"))
        customer_email = _customer_email(obj.get("customer")) or obj.get("customer_email")
        subscription_id = _object_id(obj.get("subscription"))
        if obj.get("amount_due") is not None:
            amount = int(obj["amount_due"])
        lines = (obj.get("lines") or {}).get("data") or []
        if lines:
            line = lines[0]
            plan_name = line.get("description") or (line.get("price") or {}).get("nickname")

    return BillingEvent(
        id=event_id,
        type=EventType.from_provider(raw_type),
        created=timestamp_to_datetime(_require(payload, "created", f"Event {event_id}")),
        customer_id=customer_id,
        customer_email=customer_email,
        subscription_id=subscription_id,
        plan_name=plan_name,
        amount=amount,
        previous_plan_name=previous_plan_name,
        previous_amount=previous_amount,
        currency=currency,
    )


def _failure_reason(invoice: Mapping[str, Any]) -> str:
    charge = invoice.get("charge")
    if isinstance(charge, Mapping) and charge.get("failure_message"):
        return charge["failure_message"]
    finalization_error = invoice.get("last_finalization_error") or {}
    return finalization_error.get("message") or "Unknown"


def normalize_failed_invoice(payload: Mapping[str, Any]) -> FailedPayment:
    """
    Build a :class:`FailedPayment` from an open Stripe invoice that has
    at least one failed collection attempt.
    """
    invoice_id = _require(payload, "id", "Invoice")
    customer = payload.get("customer")
    lines = (payload.get("lines") or {}).get("data") or []
    plan_name = None
    if lines:
        plan_name = lines[0].get("description") or (lines[0].get("price") or {}).get("nickname")

    return FailedPayment(
        invoice_id=invoice_id,
        customer_id=_object_id(customer),
        customer_email=_customer_email(customer) or payload.get("customer_email") or "No email",
        amount=int(payload.get("amount_due") or 0),
        currency=str(payload.get("currency") or "usd").lower(),
        failure_reason=_failure_reason(payload),
        attempt_count=int(payload.get("attempt_count") or 0),
        last_attempt_at=timestamp_to_datetime(payload.get("created")),
        plan_name=plan_name,
    )
