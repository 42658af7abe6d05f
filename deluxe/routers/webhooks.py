from __future__ import annotations

import json
import logging
from typing import Any, Dict

import stripe
from fastapi import APIRouter, HTTPException, Request

from deluxe.core.settings import S
from deluxe.metrics import record_webhook_event
from deluxe.services.checkout import ensure_stripe_configured
from deluxe.services.reconciliation import process_event
from deluxe.services.webhook_events import parse_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/api/webhooks/stripe")
async def stripe_webhook(req: Request) -> Dict[str, Any]:
    ensure_stripe_configured()
    if not S.stripe_webhook_secret:
        raise HTTPException(501, "Stripe webhook secret not configured")

    payload = await req.body()
    sig = req.headers.get("stripe-signature")
    if not sig:
        logger.warning("Stripe webhook without signature header")
        raise HTTPException(400, "No signature")

    try:
        stripe.Webhook.construct_event(payload=payload, sig_header=sig, secret=S.stripe_webhook_secret)
    except Exception as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc)
        record_webhook_event("unknown", "rejected")
        raise HTTPException(400, "Invalid signature") from exc

    # work on the verified payload as plain dicts
    envelope = parse_event(json.loads(payload))
    logger.info("Stripe event %s (%s)", envelope.event_id, envelope.event_type)

    try:
        applied = process_event(envelope)
    except Exception as exc:
        logger.exception("Stripe event %s (%s) handler failed", envelope.event_id, envelope.event_type)
        raise HTTPException(500, "Webhook handler failed") from exc

    if not applied:
        return {"received": True, "deduped": True}
    return {"received": True}
