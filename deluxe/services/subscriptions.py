from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from deluxe.core.errors import NotFoundError
from deluxe.core.products import LEVEL_ORDER, TIERS
from deluxe.core.settings import S
from deluxe.core.tables import T
from deluxe.core.time import DAY, now_ts
from deluxe.services.ddb import ddb_get, ddb_put, ddb_query_pk
from deluxe.services.users import get_user_profile, update_user_profile, user_pk

logger = logging.getLogger(__name__)

STATUSES = ("active", "past_due", "canceled")

# allowed status moves; anything else is a stale or out-of-order event
TRANSITIONS: Dict[str, set] = {
    "active": {"active", "past_due", "canceled"},
    "past_due": {"past_due", "active", "canceled"},
    "canceled": {"canceled", "active"},
}

# Stripe subscription statuses collapsed onto ours
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "canceled",
}


def sub_sk(creator_id: str) -> str:
    return f"SUB#{creator_id}"


def normalize_status(stripe_status: Optional[str]) -> str:
    return STRIPE_STATUS_MAP.get((stripe_status or "").lower(), "past_due")


def can_transition(current: Optional[str], new: str) -> bool:
    if current is None:
        return True
    return new in TRANSITIONS.get(current, set())


def level_name(tier: str) -> str:
    return tier[:1].upper() + tier[1:]


def compute_user_level(subscriptions: Iterable[Dict[str, Any]]) -> str:
    """Highest tier among active subscriptions, ``Bronze`` when there are none."""
    best = "bronze"
    for sub in subscriptions:
        if sub.get("status") != "active":
            continue
        tier = (sub.get("tier") or "").lower()
        if LEVEL_ORDER.get(tier, 0) > LEVEL_ORDER[best]:
            best = tier
    return level_name(best)


def check_content_access(user_level: str, required_level: str) -> bool:
    user_rank = LEVEL_ORDER.get((user_level or "bronze").lower(), 0)
    required = (required_level or "bronze").lower()
    # gold content is open to any paying level
    if required == "gold":
        return user_rank >= LEVEL_ORDER["prata"]
    return user_rank >= LEVEL_ORDER.get(required, 0)


def get_user_subscriptions(user_id: str) -> List[Dict[str, Any]]:
    return ddb_query_pk(T.users, user_pk(user_id), prefix="SUB#")


def get_user_active_subscriptions(user_id: str) -> List[Dict[str, Any]]:
    return [sub for sub in get_user_subscriptions(user_id) if sub.get("status") == "active"]


def get_user_subscription(user_id: str, creator_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.users, user_pk(user_id), sub_sk(creator_id))


def sync_user_level(user_id: str) -> str:
    level = compute_user_level(get_user_subscriptions(user_id))
    profile = get_user_profile(user_id)
    if profile and profile.get("level") != level:
        update_user_profile(user_id, {"level": level})
    return level


def add_creator_subscription(
    user_id: str,
    *,
    creator_id: str,
    tier: str,
    status: str,
    stripe_subscription_id: Optional[str] = None,
    creator_username: str = "",
    creator_display_name: str = "",
    current_period_end: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    """Upsert the user's subscription to ``creator_id`` and refresh the user's level.

    Returns the stored subscription, or None when the status change is not
    allowed from the current state.
    """
    if not get_user_profile(user_id):
        raise NotFoundError("User not found")
    tier = (tier or "").lower()
    if tier not in TIERS:
        raise ValueError(f"unknown tier: {tier}")
    if status not in STATUSES:
        raise ValueError(f"unknown subscription status: {status}")

    existing = get_user_subscription(user_id, creator_id)
    if existing and not can_transition(existing.get("status"), status):
        logger.warning(
            "Ignoring subscription move %s -> %s for user %s creator %s",
            existing.get("status"), status, user_id, creator_id,
        )
        return None

    ts = now_ts()
    item = {
        "pk": user_pk(user_id),
        "sk": sub_sk(creator_id),
        "creator_id": creator_id,
        "creator_username": creator_username or (existing or {}).get("creator_username", ""),
        "creator_display_name": creator_display_name or (existing or {}).get("creator_display_name", ""),
        "tier": tier,
        "status": status,
        "stripe_subscription_id": stripe_subscription_id or (existing or {}).get("stripe_subscription_id"),
        "current_period_end": int(current_period_end or ts + S.subscription_period_days * DAY),
        "created_at": (existing or {}).get("created_at", ts),
        "updated_at": ts,
    }
    ddb_put(T.users, item)
    sync_user_level(user_id)
    return item


def cancel_creator_subscription(user_id: str, creator_id: str) -> bool:
    if not get_user_profile(user_id):
        raise NotFoundError("User not found")
    existing = get_user_subscription(user_id, creator_id)
    if not existing:
        return False
    if existing.get("status") != "canceled":
        ddb_put(T.users, {**existing, "status": "canceled", "updated_at": now_ts()})
        sync_user_level(user_id)
    return True
