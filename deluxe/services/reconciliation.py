"""Apply verified Stripe events to the ledger, balances, subscriptions and notifications.

Every money movement is keyed by the paying object (invoice, payment
intent, checkout session), never by the event, so the same payment seen
through two different events or a redelivery is recorded once.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import stripe

from deluxe.core.errors import NotFoundError
from deluxe.core.products import get_service_product
from deluxe.metrics import record_webhook_event
from deluxe.services.commissions import distribute_commissions
from deluxe.services.financials import append_and_credit
from deluxe.services.ledger import PLATFORM_CREATOR_ID, append_entry, new_ledger_entry
from deluxe.services.notifications import notify_safely, platform_sender
from deluxe.services.posts import increment_post_tips
from deluxe.services.referrals import get_creator_network_record
from deluxe.services.revenue import brl, service_split, subscription_split, tip_split
from deluxe.services.subscriptions import (
    add_creator_subscription,
    cancel_creator_subscription,
    level_name,
    normalize_status,
)
from deluxe.services.tips import get_tip_by_payment_intent, update_tip_status
from deluxe.services.users import get_user_profile, public_sender, update_user_profile
from deluxe.services.webhook_events import (
    Envelope,
    IgnoredEvent,
    InvoicePaid,
    InvoicePaymentFailed,
    ServicePurchaseCompleted,
    SubscriptionChanged,
    SubscriptionCheckoutCompleted,
    SubscriptionDeleted,
    TipChargeSucceeded,
    TipCheckoutCompleted,
    TipPaymentFailed,
    TipPaymentSucceeded,
    field,
    mark_event_processed,
    release_event,
)

logger = logging.getLogger(__name__)


def _book(
    creator_id: str,
    entry_type: str,
    amount_cents: int,
    description: str,
    from_user_id: Optional[str],
    env: Envelope,
    source_id: str,
    **kwargs: Any,
) -> bool:
    _, item = new_ledger_entry(
        creator_id,
        entry_type,
        amount_cents,
        description,
        from_user_id,
        source_id=source_id,
        source_ts=env.created,
        **kwargs,
    )
    return append_entry(item)


def _book_and_credit(
    creator_id: str,
    entry_type: str,
    amount_cents: int,
    description: str,
    from_user_id: Optional[str],
    env: Envelope,
    source_id: str,
    *,
    monthly: bool = True,
) -> bool:
    _, item = new_ledger_entry(
        creator_id,
        entry_type,
        amount_cents,
        description,
        from_user_id,
        source_id=source_id,
        source_ts=env.created,
    )
    return append_and_credit(item, monthly=monthly)


def _stripe_subscription_metadata(subscription_id: Optional[str]) -> Dict[str, str]:
    if not subscription_id:
        return {}
    subscription = stripe.Subscription.retrieve(subscription_id)
    md = field(subscription, "metadata") or {}
    return {k: str(md[k]) for k in md.keys()} if md else {}


# -- subscriptions ----------------------------------------------------------


def on_subscription_checkout(env: Envelope, ev: SubscriptionCheckoutCompleted) -> None:
    if not (ev.user_id and ev.creator_id and ev.tier):
        logger.warning("Checkout session %s is missing subscription metadata", ev.session_id)
        return
    creator = get_user_profile(ev.creator_id)
    if not creator:
        logger.warning("Creator %s not found for checkout session %s", ev.creator_id, ev.session_id)
        return

    try:
        sub = add_creator_subscription(
            ev.user_id,
            creator_id=ev.creator_id,
            tier=ev.tier,
            status="active",
            stripe_subscription_id=ev.stripe_subscription_id,
            creator_username=creator.get("username", ""),
            creator_display_name=creator.get("display_name", ""),
        )
    except NotFoundError:
        logger.warning("Subscriber %s not found for checkout session %s", ev.user_id, ev.session_id)
        return
    except ValueError as exc:
        logger.warning("Checkout session %s rejected: %s", ev.session_id, exc)
        return

    profile = get_user_profile(ev.user_id) or {}
    if ev.customer_id and not profile.get("stripe_customer_id"):
        update_user_profile(ev.user_id, {"stripe_customer_id": ev.customer_id})

    if sub is None:
        return
    tier_label = level_name(ev.tier)
    notify_safely(
        ev.user_id,
        "tier_upgrade",
        f"Assinatura {tier_label} Ativada!",
        f"Você agora tem acesso ao conteúdo {ev.tier} de @{creator.get('username', '')}! "
        "Aproveite o conteúdo exclusivo.",
        **platform_sender(),
        dedupe_key=f"{ev.session_id}#tier_upgrade",
    )


def on_subscription_changed(env: Envelope, ev: SubscriptionChanged) -> None:
    if not (ev.user_id and ev.creator_id and ev.tier):
        logger.warning("Subscription %s is missing metadata", ev.stripe_subscription_id)
        return
    creator = get_user_profile(ev.creator_id)
    if not creator:
        logger.warning("Creator %s not found for subscription %s", ev.creator_id, ev.stripe_subscription_id)
        return
    try:
        add_creator_subscription(
            ev.user_id,
            creator_id=ev.creator_id,
            tier=ev.tier,
            status=normalize_status(ev.stripe_status),
            stripe_subscription_id=ev.stripe_subscription_id,
            creator_username=creator.get("username", ""),
            creator_display_name=creator.get("display_name", ""),
            current_period_end=ev.current_period_end,
        )
    except (NotFoundError, ValueError) as exc:
        logger.warning("Subscription %s not applied: %s", ev.stripe_subscription_id, exc)


def on_subscription_deleted(env: Envelope, ev: SubscriptionDeleted) -> None:
    if not (ev.user_id and ev.creator_id):
        logger.warning("Deleted subscription %s is missing metadata", ev.stripe_subscription_id)
        return
    try:
        cancel_creator_subscription(ev.user_id, ev.creator_id)
    except NotFoundError:
        logger.warning("Subscriber %s not found for subscription %s", ev.user_id, ev.stripe_subscription_id)
        return

    creator = get_user_profile(ev.creator_id)
    creator_name = f"@{creator['username']}" if creator and creator.get("username") else "a criadora"
    notify_safely(
        ev.user_id,
        "system",
        "Assinatura Cancelada",
        f"Sua assinatura de {creator_name} foi cancelada.",
        **platform_sender(),
        dedupe_key=f"{ev.stripe_subscription_id}#canceled",
    )


def on_invoice_paid(env: Envelope, ev: InvoicePaid) -> None:
    md = {**ev.metadata, **_stripe_subscription_metadata(ev.stripe_subscription_id)}
    user_id = md.get("userId")
    creator_id = md.get("creatorId")
    tier = md.get("tier", "")
    if not (user_id and creator_id):
        logger.warning("Invoice %s has no subscriber metadata", ev.invoice_id)
        return

    split = subscription_split(ev.amount_paid_cents)
    _book_and_credit(
        creator_id,
        "subscription",
        split.creator_cents,
        f"Assinatura {tier} - Usuário {user_id}",
        user_id,
        env,
        ev.invoice_id,
    )

    commissions = 0
    network = get_creator_network_record(creator_id)
    if network and network.get("referred_by_id"):
        commissions = distribute_commissions(
            creator_id,
            ev.amount_paid_cents,
            user_id,
            source_id=ev.invoice_id,
            source_ts=env.created,
        )

    _book(
        PLATFORM_CREATOR_ID,
        "platform_revenue",
        split.platform_cents - commissions,
        f"Lucro da plataforma - Assinatura {tier}",
        user_id,
        env,
        ev.invoice_id,
        meta={"creator_id": creator_id, "commissions_cents": commissions},
    )
    logger.info(
        "Invoice %s: %s cents to creator %s, %s in commissions",
        ev.invoice_id, split.creator_cents, creator_id, commissions,
    )


def on_invoice_payment_failed(env: Envelope, ev: InvoicePaymentFailed) -> None:
    md = {**ev.metadata, **_stripe_subscription_metadata(ev.stripe_subscription_id)}
    user_id = md.get("userId")
    creator_id = md.get("creatorId")
    if not (user_id and creator_id):
        logger.warning("Failed invoice %s has no subscriber metadata", ev.invoice_id)
        return

    creator = get_user_profile(creator_id)
    if creator and md.get("tier"):
        try:
            add_creator_subscription(
                user_id,
                creator_id=creator_id,
                tier=md["tier"],
                status="past_due",
                stripe_subscription_id=ev.stripe_subscription_id,
                creator_username=creator.get("username", ""),
                creator_display_name=creator.get("display_name", ""),
            )
        except (NotFoundError, ValueError) as exc:
            logger.warning("Invoice %s: subscription not marked past due: %s", ev.invoice_id, exc)

    notify_safely(
        user_id,
        "system",
        "Falha no Pagamento",
        "Não conseguimos processar seu pagamento. Por favor, atualize suas informações de pagamento "
        "para continuar com acesso aos conteúdos exclusivos.",
        **platform_sender(),
        dedupe_key=f"{ev.invoice_id}#payment_failed",
    )


# -- tips -------------------------------------------------------------------


def _notify_tip(
    *,
    source_id: str,
    sender_id: str,
    sender_username: str,
    creator_id: str,
    creator_username: str,
    amount_cents: int,
    message: str,
    post_id: str,
) -> None:
    sender = public_sender(get_user_profile(sender_id), sender_username or "usuario")
    username = sender["from_username"]
    text = (
        f'@{username} enviou {brl(amount_cents)} com a mensagem: "{message}"'
        if message
        else f"@{username} enviou {brl(amount_cents)} de gorjeta!"
    )
    notify_safely(
        creator_id,
        "tip_received",
        "Você recebeu uma Gorjeta!",
        text,
        from_user_id=sender_id,
        action_url=f"/post/{post_id}" if post_id else None,
        dedupe_key=f"{source_id}#tip_received",
        **sender,
    )
    notify_safely(
        sender_id,
        "tip_sent",
        "Gorjeta enviada com sucesso!",
        f"Sua gorjeta de {brl(amount_cents)} para @{creator_username} foi processada!",
        **platform_sender(),
        dedupe_key=f"{source_id}#tip_sent",
    )


def _settle_tip(
    env: Envelope,
    *,
    source_id: str,
    sender_id: str,
    sender_username: str,
    creator_id: str,
    creator_username: str,
    amount_cents: int,
    message: str,
    post_id: str,
) -> None:
    # tips pay a flat platform fee and never feed referral commissions
    split = tip_split(amount_cents)
    sender = public_sender(get_user_profile(sender_id), sender_username or "usuario")
    _book_and_credit(
        creator_id,
        "tip",
        split.creator_cents,
        f"Tip de @{sender['from_username']} - {brl(amount_cents)}",
        sender_id,
        env,
        source_id,
        monthly=False,
    )
    _book(
        PLATFORM_CREATOR_ID,
        "platform_revenue",
        split.platform_cents,
        f"Taxa de tip - {brl(amount_cents)}",
        sender_id,
        env,
        source_id,
        meta={"creator_id": creator_id},
    )
    _notify_tip(
        source_id=source_id,
        sender_id=sender_id,
        sender_username=sender_username,
        creator_id=creator_id,
        creator_username=creator_username,
        amount_cents=amount_cents,
        message=message,
        post_id=post_id,
    )


def on_tip_checkout(env: Envelope, ev: TipCheckoutCompleted) -> None:
    if not (ev.user_id and ev.creator_id and ev.amount_cents):
        logger.warning("Tip %s is missing userId, creatorId or amount metadata", ev.payment_ref)
        return
    _settle_tip(
        env,
        source_id=ev.payment_ref,
        sender_id=ev.user_id,
        sender_username="",
        creator_id=ev.creator_id,
        creator_username=ev.creator_username,
        amount_cents=ev.amount_cents,
        message=ev.message,
        post_id=ev.post_id,
    )


def on_tip_payment_succeeded(env: Envelope, ev: TipPaymentSucceeded) -> None:
    if not (ev.post_id and ev.sender_id and ev.creator_id):
        logger.warning("Tip payment intent %s is missing metadata", ev.payment_intent_id)
        return
    tip = get_tip_by_payment_intent(ev.payment_intent_id)
    if not tip:
        logger.warning("No tip recorded for payment intent %s", ev.payment_intent_id)
        return

    if update_tip_status(ev.payment_intent_id, "completed"):
        increment_post_tips(ev.post_id, int(tip.get("amount_cents", ev.amount_cents)))

    _settle_tip(
        env,
        source_id=ev.payment_intent_id,
        sender_id=ev.sender_id,
        sender_username=ev.sender_username,
        creator_id=ev.creator_id,
        creator_username=ev.creator_username,
        amount_cents=ev.amount_cents,
        message=ev.message,
        post_id=ev.post_id,
    )


def on_tip_payment_failed(env: Envelope, ev: TipPaymentFailed) -> None:
    if not ev.sender_id:
        logger.warning("Failed tip payment intent %s has no senderId", ev.payment_intent_id)
        return
    if get_tip_by_payment_intent(ev.payment_intent_id) and not update_tip_status(ev.payment_intent_id, "failed"):
        logger.warning("Tip %s is no longer pending; failure not recorded", ev.payment_intent_id)
        return
    notify_safely(
        ev.sender_id,
        "system",
        "Falha no pagamento do Tip",
        "Não conseguimos processar seu tip. Por favor, tente novamente ou use outro método de pagamento.",
        **platform_sender(),
        dedupe_key=f"{ev.payment_intent_id}#tip_failed",
    )


# -- services ---------------------------------------------------------------


def on_service_purchase(env: Envelope, ev: ServicePurchaseCompleted) -> None:
    if not (ev.user_id and ev.creator_id and ev.service_product_id):
        logger.warning("Service checkout %s is missing metadata", ev.session_id)
        return
    product = get_service_product(ev.service_product_id)
    if not product:
        logger.warning("Service product %s not found for session %s", ev.service_product_id, ev.session_id)
        return

    gross = ev.amount_total_cents
    split = service_split(gross)
    _book_and_credit(
        ev.creator_id,
        "service",
        split.creator_cents,
        f"{product.name} - Usuário {ev.user_id}",
        ev.user_id,
        env,
        ev.session_id,
    )
    _book(
        PLATFORM_CREATOR_ID,
        "platform_revenue",
        split.platform_cents,
        f"Lucro da plataforma - {product.name}",
        ev.user_id,
        env,
        ev.session_id,
        meta={"creator_id": ev.creator_id},
    )

    buyer = public_sender(get_user_profile(ev.user_id))
    creator = public_sender(get_user_profile(ev.creator_id), "criadora")
    notify_safely(
        ev.creator_id,
        "service_purchase",
        "Novo Serviço Adquirido!",
        f"@{buyer['from_username']} comprou {product.name} por {brl(gross)}! "
        f"Você recebeu {brl(split.creator_cents)}.",
        from_user_id=ev.user_id,
        dedupe_key=f"{ev.session_id}#service_sold",
        **buyer,
    )
    notify_safely(
        ev.user_id,
        "service_purchase",
        "Serviço Adquirido com Sucesso!",
        f"Você adquiriu {product.name} de @{creator['from_username']} por {brl(gross)}!",
        from_user_id=ev.creator_id,
        dedupe_key=f"{ev.session_id}#service_bought",
        **creator,
    )


def on_ignored(env: Envelope, ev: IgnoredEvent) -> None:
    logger.debug("Ignoring %s (%s): %s", env.event_type, env.event_id, ev.reason)


HANDLERS: Dict[type, Callable[[Envelope, Any], None]] = {
    SubscriptionCheckoutCompleted: on_subscription_checkout,
    SubscriptionChanged: on_subscription_changed,
    SubscriptionDeleted: on_subscription_deleted,
    InvoicePaid: on_invoice_paid,
    InvoicePaymentFailed: on_invoice_payment_failed,
    TipCheckoutCompleted: on_tip_checkout,
    TipChargeSucceeded: on_tip_checkout,
    TipPaymentSucceeded: on_tip_payment_succeeded,
    TipPaymentFailed: on_tip_payment_failed,
    ServicePurchaseCompleted: on_service_purchase,
    IgnoredEvent: on_ignored,
}


def process_event(env: Envelope) -> bool:
    """Claim and apply one event. Returns False for an already-claimed event.

    Handler exceptions release the claim and propagate so the caller answers
    with a 5xx and the provider redelivers.
    """
    if not mark_event_processed(env.event_id):
        logger.info("Stripe event %s (%s) already processed", env.event_id, env.event_type)
        record_webhook_event(env.event_type, "deduped")
        return False

    handler = HANDLERS[type(env.payload)]
    try:
        handler(env, env.payload)
    except Exception:
        release_event(env.event_id)
        record_webhook_event(env.event_type, "error")
        raise
    record_webhook_event(env.event_type, "ignored" if isinstance(env.payload, IgnoredEvent) else "processed")
    return True
