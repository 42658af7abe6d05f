from __future__ import annotations

from deluxe.services.webhook_events import (
    IgnoredEvent,
    InvoicePaid,
    ServicePurchaseCompleted,
    SubscriptionChanged,
    SubscriptionCheckoutCompleted,
    TipChargeSucceeded,
    TipCheckoutCompleted,
    TipPaymentSucceeded,
    parse_event,
    tip_amount_cents,
)


def event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "type": event_type, "created": 1_700_000_000, "data": {"object": obj}}


def test_checkout_session_switches_on_metadata_type():
    sub = parse_event(event("checkout.session.completed", {
        "id": "cs_1", "subscription": "sub_1", "customer": "cus_1",
        "metadata": {"userId": "u1", "creatorId": "c1", "tier": "gold"},
    }))
    assert isinstance(sub.payload, SubscriptionCheckoutCompleted)
    assert sub.payload.stripe_subscription_id == "sub_1"
    assert sub.created == 1_700_000_000

    tip = parse_event(event("checkout.session.completed", {
        "id": "cs_2", "payment_intent": "pi_2",
        "metadata": {"type": "tip", "userId": "u1", "creatorId": "c1", "amount": "20"},
    }))
    assert isinstance(tip.payload, TipCheckoutCompleted)
    assert tip.payload.payment_ref == "pi_2"
    assert tip.payload.amount_cents == 2000

    svc = parse_event(event("checkout.session.completed", {
        "id": "cs_3", "amount_total": 4990,
        "metadata": {"type": "service_purchase", "userId": "u1", "creatorId": "c1", "serviceProductId": "svc-custom-photo"},
    }))
    assert isinstance(svc.payload, ServicePurchaseCompleted)
    assert svc.payload.amount_total_cents == 4990


def test_charge_updated_only_for_settled_tips():
    settled = parse_event(event("charge.updated", {
        "id": "ch_1", "payment_intent": "pi_1", "status": "succeeded", "paid": True,
        "metadata": {"type": "tip", "userId": "u1", "creatorId": "c1", "amount": "5"},
    }))
    assert isinstance(settled.payload, TipChargeSucceeded)
    assert settled.payload.payment_ref == "pi_1"

    pending = parse_event(event("charge.updated", {
        "id": "ch_2", "status": "pending", "paid": False, "metadata": {"type": "tip"},
    }))
    assert isinstance(pending.payload, IgnoredEvent)


def test_payment_intent_needs_tip_type():
    tip = parse_event(event("payment_intent.succeeded", {
        "id": "pi_1", "amount": 1500, "metadata": {"type": "tip", "senderId": "u1", "creatorId": "c1", "postId": "p1"},
    }))
    assert isinstance(tip.payload, TipPaymentSucceeded)
    assert tip.payload.amount_cents == 1500

    other = parse_event(event("payment_intent.succeeded", {"id": "pi_2", "amount": 100, "metadata": {}}))
    assert isinstance(other.payload, IgnoredEvent)


def test_invoice_subscription_from_new_api_location():
    parsed = parse_event(event("invoice.paid", {
        "id": "in_1", "amount_paid": 3990,
        "parent": {"subscription_details": {"subscription": "sub_9", "metadata": {"creatorId": "c1"}}},
    }))
    assert isinstance(parsed.payload, InvoicePaid)
    assert parsed.payload.stripe_subscription_id == "sub_9"
    assert parsed.payload.metadata == {"creatorId": "c1"}


def test_subscription_period_end_from_items():
    parsed = parse_event(event("customer.subscription.updated", {
        "id": "sub_1", "status": "past_due",
        "items": {"data": [{"current_period_end": 1_800_000_000}]},
        "metadata": {"userId": "u1", "creatorId": "c1", "tier": "gold"},
    }))
    assert isinstance(parsed.payload, SubscriptionChanged)
    assert parsed.payload.current_period_end == 1_800_000_000


def test_unknown_event_type_is_ignored():
    parsed = parse_event(event("customer.created", {"id": "cus_1"}))
    assert isinstance(parsed.payload, IgnoredEvent)


def test_tip_amount_parsing():
    assert tip_amount_cents("10") == 1000
    assert tip_amount_cents("12.5") == 1250
    assert tip_amount_cents("abc") is None
    assert tip_amount_cents("") is None
    assert tip_amount_cents("-5") is None
