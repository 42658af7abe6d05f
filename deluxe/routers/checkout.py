from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from deluxe.auth.deps import require_user
from deluxe.core.errors import http_errors
from deluxe.models import (
    ServiceCheckoutReq,
    SubscriptionCheckoutReq,
    TipCheckoutReq,
    TipPaymentIntentReq,
    VerifyCheckoutReq,
)
from deluxe.services.checkout import (
    create_service_checkout,
    create_subscription_checkout,
    create_tip_checkout,
    create_tip_payment_intent,
    get_checkout_session,
    verify_checkout,
)
from deluxe.services.users import get_user_profile
from deluxe.services.webhook_events import field

router = APIRouter(tags=["checkout"])


@router.post("/api/checkout/subscription")
async def checkout_subscription(body: SubscriptionCheckoutReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        return create_subscription_checkout(ctx["user_id"], body.creator_id, body.tier)


@router.post("/api/checkout/service")
async def checkout_service(body: ServiceCheckoutReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        return create_service_checkout(ctx["user_id"], body.creator_id, body.service_product_id)


@router.post("/api/create-tip-checkout")
async def tip_checkout(body: TipCheckoutReq) -> Dict[str, Any]:
    with http_errors():
        return create_tip_checkout(
            body.user_id or "",
            body.creator_id,
            body.creator_username,
            body.amount,
            post_id=body.post_id or "",
            message=body.message or "",
        )


@router.post("/api/tips/payment-intent")
async def tip_payment_intent(body: TipPaymentIntentReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    profile = get_user_profile(ctx["user_id"]) or {}
    sender = {"user_id": ctx["user_id"], "username": profile.get("username", "")}
    with http_errors():
        return create_tip_payment_intent(
            sender,
            creator_id=body.creator_id,
            creator_username=body.creator_username,
            amount=body.amount,
            post_id=body.post_id or "",
            message=body.message or "",
        )


@router.post("/api/verify-checkout")
async def verify(body: VerifyCheckoutReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        return verify_checkout(body.session_id, ctx["user_id"])


@router.get("/api/checkout/session/{session_id}")
async def checkout_session(session_id: str, ctx=Depends(require_user)) -> Dict[str, Any]:
    session = get_checkout_session(session_id)
    metadata = field(session, "metadata") or {}
    if field(metadata, "userId") not in (None, "", ctx["user_id"]):
        raise HTTPException(404, "Checkout session not found")
    return {
        "id": field(session, "id"),
        "status": field(session, "status"),
        "paymentStatus": field(session, "payment_status"),
        "customerEmail": field(field(session, "customer_details"), "email"),
        "amountTotal": field(session, "amount_total"),
        "currency": field(session, "currency"),
    }
