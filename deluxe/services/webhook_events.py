"""Typed view of the Stripe events the platform reacts to.

``parse_event`` turns a verified webhook payload into exactly one of the
dataclasses below. ``checkout.session.completed``, ``charge.updated`` and
``payment_intent.*`` are further split on ``metadata.type``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from botocore.exceptions import ClientError

from deluxe.core.settings import S
from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_del, ddb_put, is_conditional_failure, with_ttl

logger = logging.getLogger(__name__)

TIP = "tip"
SERVICE_PURCHASE = "service_purchase"


@dataclass(frozen=True)
class SubscriptionCheckoutCompleted:
    session_id: str
    user_id: Optional[str]
    creator_id: Optional[str]
    tier: Optional[str]
    stripe_subscription_id: Optional[str]
    customer_id: Optional[str]


@dataclass(frozen=True)
class ServicePurchaseCompleted:
    session_id: str
    user_id: Optional[str]
    creator_id: Optional[str]
    service_product_id: Optional[str]
    amount_total_cents: int


@dataclass(frozen=True)
class TipCheckoutCompleted:
    """A tip paid through the embedded tip checkout session."""
    payment_ref: str
    user_id: Optional[str]
    creator_id: Optional[str]
    creator_username: str
    post_id: str
    message: str
    amount_cents: Optional[int]


@dataclass(frozen=True)
class TipChargeSucceeded(TipCheckoutCompleted):
    """The same tip seen from its settled charge."""


@dataclass(frozen=True)
class SubscriptionChanged:
    stripe_subscription_id: str
    user_id: Optional[str]
    creator_id: Optional[str]
    tier: Optional[str]
    stripe_status: str
    current_period_end: Optional[int]


@dataclass(frozen=True)
class SubscriptionDeleted:
    stripe_subscription_id: str
    user_id: Optional[str]
    creator_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaid:
    invoice_id: str
    stripe_subscription_id: Optional[str]
    amount_paid_cents: int
    metadata: Dict[str, str]


@dataclass(frozen=True)
class InvoicePaymentFailed:
    invoice_id: str
    stripe_subscription_id: Optional[str]
    metadata: Dict[str, str]


@dataclass(frozen=True)
class TipPaymentSucceeded:
    payment_intent_id: str
    amount_cents: int
    post_id: Optional[str]
    sender_id: Optional[str]
    sender_username: str
    creator_id: Optional[str]
    creator_username: str
    message: str


@dataclass(frozen=True)
class TipPaymentFailed:
    payment_intent_id: str
    sender_id: Optional[str]


@dataclass(frozen=True)
class IgnoredEvent:
    reason: str


PaymentEvent = Union[
    SubscriptionCheckoutCompleted,
    ServicePurchaseCompleted,
    TipCheckoutCompleted,
    TipChargeSucceeded,
    SubscriptionChanged,
    SubscriptionDeleted,
    InvoicePaid,
    InvoicePaymentFailed,
    TipPaymentSucceeded,
    TipPaymentFailed,
    IgnoredEvent,
]


@dataclass(frozen=True)
class Envelope:
    event_id: str
    event_type: str
    created: int
    payload: PaymentEvent


def field(obj: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a dict or StripeObject, tolerating absent keys."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _meta(obj: Any) -> Dict[str, str]:
    md = field(obj, "metadata") or {}
    return {k: str(md[k]) for k in md.keys()} if md else {}


def _opt(md: Dict[str, str], key: str) -> Optional[str]:
    value = (md.get(key) or "").strip()
    return value or None


def tip_amount_cents(raw: Optional[str]) -> Optional[int]:
    """Whole-or-decimal BRL string from tip metadata -> cents (floored)."""
    if not raw:
        return None
    try:
        cents = int(Decimal(raw) * 100)
    except (InvalidOperation, ValueError, OverflowError):
        return None
    return cents if cents > 0 else None


def invoice_subscription_id(invoice: Any) -> Optional[str]:
    sub = field(invoice, "subscription")
    if sub:
        return sub if isinstance(sub, str) else field(sub, "id")
    details = field(field(invoice, "parent"), "subscription_details")
    return field(details, "subscription")


def invoice_subscription_metadata(invoice: Any) -> Dict[str, str]:
    details = field(field(invoice, "parent"), "subscription_details")
    return _meta(details) or _meta(field(invoice, "subscription_details"))


def subscription_period_end(subscription: Any) -> Optional[int]:
    end = field(subscription, "current_period_end")
    if end:
        return int(end)
    items = field(field(subscription, "items"), "data") or []
    if items:
        end = field(items[0], "current_period_end")
        return int(end) if end else None
    return None


def _tip_completed(cls: type, obj: Any, payment_ref: str) -> TipCheckoutCompleted:
    md = _meta(obj)
    return cls(
        payment_ref=payment_ref,
        user_id=_opt(md, "userId"),
        creator_id=_opt(md, "creatorId"),
        creator_username=md.get("creatorUsername", ""),
        post_id=md.get("postId", ""),
        message=md.get("message", ""),
        amount_cents=tip_amount_cents(md.get("amount")),
    )


def _parse_payload(event_type: str, obj: Any) -> PaymentEvent:
    md = _meta(obj)

    if event_type == "checkout.session.completed":
        kind = md.get("type")
        if kind == TIP:
            return _tip_completed(TipCheckoutCompleted, obj, field(obj, "payment_intent") or field(obj, "id"))
        if kind == SERVICE_PURCHASE:
            return ServicePurchaseCompleted(
                session_id=field(obj, "id"),
                user_id=_opt(md, "userId"),
                creator_id=_opt(md, "creatorId"),
                service_product_id=_opt(md, "serviceProductId"),
                amount_total_cents=int(field(obj, "amount_total", 0)),
            )
        return SubscriptionCheckoutCompleted(
            session_id=field(obj, "id"),
            user_id=_opt(md, "userId"),
            creator_id=_opt(md, "creatorId"),
            tier=_opt(md, "tier"),
            stripe_subscription_id=field(obj, "subscription"),
            customer_id=field(obj, "customer"),
        )

    if event_type == "charge.updated":
        if md.get("type") == TIP and field(obj, "status") == "succeeded" and field(obj, "paid"):
            return _tip_completed(TipChargeSucceeded, obj, field(obj, "payment_intent") or field(obj, "id"))
        return IgnoredEvent("charge is not a settled tip")

    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        return SubscriptionChanged(
            stripe_subscription_id=field(obj, "id"),
            user_id=_opt(md, "userId"),
            creator_id=_opt(md, "creatorId"),
            tier=_opt(md, "tier"),
            stripe_status=field(obj, "status", ""),
            current_period_end=subscription_period_end(obj),
        )

    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(
            stripe_subscription_id=field(obj, "id"),
            user_id=_opt(md, "userId"),
            creator_id=_opt(md, "creatorId"),
        )

    if event_type == "invoice.paid":
        return InvoicePaid(
            invoice_id=field(obj, "id"),
            stripe_subscription_id=invoice_subscription_id(obj),
            amount_paid_cents=int(field(obj, "amount_paid", 0)),
            metadata=invoice_subscription_metadata(obj),
        )

    if event_type == "invoice.payment_failed":
        return InvoicePaymentFailed(
            invoice_id=field(obj, "id"),
            stripe_subscription_id=invoice_subscription_id(obj),
            metadata=invoice_subscription_metadata(obj),
        )

    if event_type == "payment_intent.succeeded":
        if md.get("type") != TIP:
            return IgnoredEvent("payment intent is not a tip")
        return TipPaymentSucceeded(
            payment_intent_id=field(obj, "id"),
            amount_cents=int(field(obj, "amount", 0)),
            post_id=_opt(md, "postId"),
            sender_id=_opt(md, "senderId"),
            sender_username=md.get("senderUsername", ""),
            creator_id=_opt(md, "creatorId"),
            creator_username=md.get("creatorUsername", ""),
            message=md.get("message", ""),
        )

    if event_type == "payment_intent.payment_failed":
        if md.get("type") != TIP:
            return IgnoredEvent("payment intent is not a tip")
        return TipPaymentFailed(payment_intent_id=field(obj, "id"), sender_id=_opt(md, "senderId"))

    return IgnoredEvent(f"unhandled event type {event_type}")


def parse_event(event: Dict[str, Any]) -> Envelope:
    event_type = field(event, "type", "")
    obj = field(field(event, "data"), "object") or {}
    return Envelope(
        event_id=field(event, "id", ""),
        event_type=event_type,
        created=int(field(event, "created", 0) or now_ts()),
        payload=_parse_payload(event_type, obj),
    )


def _event_key(event_id: str) -> Dict[str, str]:
    return {"pk": "STRIPE_EVENT", "sk": event_id}


def mark_event_processed(event_id: str) -> bool:
    """Claim ``event_id``. False means an earlier delivery already claimed it."""
    try:
        ddb_put(
            T.finance,
            with_ttl(
                {**_event_key(event_id), "ts": now_ts()},
                ttl_epoch=now_ts() + S.stripe_event_ttl_seconds,
            ),
            condition_expression="attribute_not_exists(pk)",
        )
        return True
    except ClientError as exc:
        if is_conditional_failure(exc):
            return False
        raise


def release_event(event_id: str) -> None:
    """Drop the claim so the provider's redelivery is processed again."""
    try:
        ddb_del(T.finance, "STRIPE_EVENT", event_id)
    except ClientError:
        logger.exception("Could not release webhook event %s", event_id)
