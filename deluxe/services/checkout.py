from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import stripe
from fastapi import HTTPException

from deluxe.core.errors import DomainError, NotFoundError, TipAmountError, UnknownProductError
from deluxe.core.products import TIP_PRICE_IDS, get_service_product, get_subscription_product, tier_for_price_id
from deluxe.core.settings import S
from deluxe.services.subscriptions import add_creator_subscription, get_user_subscription
from deluxe.services.tips import create_tip
from deluxe.services.users import get_user_profile
from deluxe.services.webhook_events import SERVICE_PURCHASE, TIP, field

logger = logging.getLogger(__name__)

_MISSING_SLASHES = re.compile(r"^(https?):([^/])")


def ensure_stripe_configured() -> None:
    if not S.stripe_secret_key:
        raise HTTPException(501, "Stripe is not configured")
    stripe.api_key = S.stripe_secret_key


def normalize_app_url(url: Optional[str] = None) -> str:
    """``deluxe.app`` -> ``https://deluxe.app``; ``https:deluxe.app`` -> ``https://deluxe.app``."""
    app_url = (url if url is not None else S.public_app_url).strip().rstrip("/")
    if not app_url.startswith(("http://", "https://")):
        # a scheme without slashes is repaired below rather than prefixed again
        if not _MISSING_SLASHES.match(app_url):
            app_url = f"https://{app_url}"
    return _MISSING_SLASHES.sub(r"\1://\2", app_url)


def _session_out(session: Any) -> Dict[str, Any]:
    return {"clientSecret": field(session, "client_secret"), "sessionId": field(session, "id")}


def create_subscription_checkout(user_id: str, creator_id: str, tier: str) -> Dict[str, Any]:
    product = get_subscription_product(tier)
    if not product:
        raise UnknownProductError(f"Produto de assinatura não encontrado para tier: {tier}")
    ensure_stripe_configured()

    metadata = {"userId": user_id, "creatorId": creator_id, "tier": product.tier}
    session = stripe.checkout.Session.create(
        ui_mode="embedded",
        mode="subscription",
        line_items=[{"price": product.stripe_price_id, "quantity": 1}],
        subscription_data={"metadata": metadata},
        metadata=metadata,
        return_url=f"{normalize_app_url()}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
    )
    logger.info("Subscription checkout %s created for user %s tier %s", field(session, "id"), user_id, product.tier)
    return _session_out(session)


def create_service_checkout(user_id: str, creator_id: str, service_product_id: str) -> Dict[str, Any]:
    product = get_service_product(service_product_id)
    if not product:
        raise UnknownProductError(f"Serviço não encontrado: {service_product_id}")
    ensure_stripe_configured()

    session = stripe.checkout.Session.create(
        ui_mode="embedded",
        mode="payment",
        line_items=[{"price": product.stripe_price_id, "quantity": 1}],
        metadata={
            "userId": user_id,
            "creatorId": creator_id,
            "serviceProductId": service_product_id,
            "type": SERVICE_PURCHASE,
        },
        return_url=f"{normalize_app_url()}/service/success?session_id={{CHECKOUT_SESSION_ID}}",
    )
    return _session_out(session)


def create_tip_checkout(
    user_id: str,
    creator_id: str,
    creator_username: str,
    amount: int,
    post_id: str = "",
    message: str = "",
) -> Dict[str, Any]:
    """Embedded checkout for one of the fixed tip amounts."""
    price_id = TIP_PRICE_IDS.get(amount)
    if not price_id:
        raise TipAmountError("Valor inválido. Escolha entre R$5, R$10, R$20, R$50 ou R$100")
    ensure_stripe_configured()

    metadata = {
        "type": TIP,
        "creatorId": creator_id,
        "creatorUsername": creator_username,
        "postId": post_id or "",
        "message": message or "",
        "amount": str(amount),
        "userId": user_id or "",
    }
    session = stripe.checkout.Session.create(
        ui_mode="embedded",
        mode="payment",
        redirect_on_completion="never",
        line_items=[{"price": price_id, "quantity": 1}],
        payment_intent_data={"metadata": metadata},
        metadata=metadata,
    )
    return _session_out(session)


def tip_amount_to_cents(amount: Any) -> int:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise TipAmountError("Valor deve estar entre R$5 e R$1.000") from None
    if not value.is_finite() or value < S.tip_min_amount or value > S.tip_max_amount:
        raise TipAmountError("Valor deve estar entre R$5 e R$1.000")
    return int((value * 100).to_integral_value())


def create_tip_payment_intent(
    sender: Dict[str, Any],
    *,
    creator_id: str,
    creator_username: str,
    amount: Any,
    post_id: str = "",
    message: str = "",
) -> Dict[str, Any]:
    """Card-element tip: a PaymentIntent plus a pending Tip keyed by it.

    The amount is validated before Stripe is touched.
    """
    amount_cents = tip_amount_to_cents(amount)
    ensure_stripe_configured()

    sender_id = sender["user_id"]
    sender_username = sender.get("username", "")
    intent = stripe.PaymentIntent.create(
        amount=amount_cents,
        currency=S.stripe_default_currency,
        metadata={
            "type": TIP,
            "postId": post_id or "",
            "senderId": sender_id,
            "senderUsername": sender_username,
            "creatorId": creator_id,
            "creatorUsername": creator_username,
            "message": message or "",
        },
        automatic_payment_methods={"enabled": True},
    )
    tip = create_tip(
        payment_intent_id=field(intent, "id"),
        sender_id=sender_id,
        sender_username=sender_username,
        creator_id=creator_id,
        creator_username=creator_username,
        amount_cents=amount_cents,
        post_id=post_id or "",
        message=message or "",
    )
    return {
        "clientSecret": field(intent, "client_secret"),
        "paymentIntentId": field(intent, "id"),
        "tipId": tip["pk"],
    }


def get_checkout_session(session_id: str) -> Any:
    ensure_stripe_configured()
    return stripe.checkout.Session.retrieve(session_id)


def verify_checkout(session_id: str, user_id: str) -> Dict[str, Any]:
    """Confirm a paid subscription checkout from the return page and record it."""
    ensure_stripe_configured()
    session = stripe.checkout.Session.retrieve(session_id, expand=["line_items", "line_items.data.price.product"])
    metadata = field(session, "metadata") or {}
    owner = field(metadata, "userId")
    if owner and owner != user_id:
        logger.warning("User %s tried to verify checkout session %s of %s", user_id, session_id, owner)
        raise NotFoundError("Checkout session not found")
    if field(session, "payment_status") != "paid":
        raise DomainError("Payment not completed")

    lines = field(field(session, "line_items"), "data") or []
    price_id = field(field(lines[0], "price"), "id") if lines else None
    tier = tier_for_price_id(price_id)
    if not tier:
        logger.warning("Checkout session %s has unknown price %s", session_id, price_id)
        raise UnknownProductError("Unknown subscription tier")

    if not get_user_profile(user_id):
        raise NotFoundError("User not found")

    creator_id = field(metadata, "creatorId")
    if creator_id:
        stripe_subscription_id = field(session, "subscription")
        existing = get_user_subscription(user_id, creator_id)
        # a canceled subscription comes back only through a new checkout
        if (
            existing
            and existing.get("status") == "canceled"
            and existing.get("stripe_subscription_id") == stripe_subscription_id
        ):
            raise DomainError("Subscription is no longer active")
        creator = get_user_profile(creator_id) or {}
        add_creator_subscription(
            user_id,
            creator_id=creator_id,
            tier=tier,
            status="active",
            stripe_subscription_id=stripe_subscription_id,
            creator_username=creator.get("username", ""),
            creator_display_name=creator.get("display_name", ""),
        )
    else:
        logger.warning("Checkout session %s has no creatorId; level not updated", session_id)

    return {"success": True, "tier": tier, "message": "Subscription verified and user level updated"}
