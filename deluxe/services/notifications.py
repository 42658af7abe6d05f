from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from deluxe.core.errors import NotFoundError
from deluxe.core.settings import S
from deluxe.core.tables import T
from deluxe.core.time import HOUR, now_ts
from deluxe.services.ddb import ddb_del, ddb_get, ddb_put, ddb_put_new, ddb_query_pk, ddb_set_fields, with_ttl
from deluxe.services.users import user_pk

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {
    "message", "welcome", "upgrade", "system", "mission", "level_up", "xp_gained", "follow",
    "tier_upgrade", "engagement_level_up", "tip_received", "tip_sent", "service_purchase",
}


def platform_sender() -> Dict[str, str]:
    return {
        "from_user_id": S.platform_user_id,
        "from_username": S.platform_username,
        "from_display_name": S.platform_username,
        "from_profile_image": S.platform_profile_image,
    }


def create_notification_with_expiry(
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    *,
    from_user_id: Optional[str] = None,
    from_username: Optional[str] = None,
    from_display_name: Optional[str] = None,
    from_profile_image: Optional[str] = None,
    action_url: Optional[str] = None,
    dedupe_key: Optional[str] = None,
) -> Optional[str]:
    """Store a notification that expires ``notification_ttl_hours`` from now.

    With a ``dedupe_key`` the record id is fixed and a second call with the
    same key is a no-op returning None.
    """
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type: {notification_type}")
    ts = now_ts()
    notification_id = dedupe_key or f"{ts}_{secrets.token_hex(6)}"
    sk = f"NOTIF#{notification_id}" if dedupe_key else f"NOTIF#{ts}#{notification_id}"
    expires_at = ts + S.notification_ttl_hours * HOUR
    item: Dict[str, Any] = {
        "pk": user_pk(user_id),
        "sk": sk,
        "notification_id": notification_id,
        "user_id": user_id,
        "type": notification_type,
        "title": title,
        "message": message,
        "read": False,
        "created_at": ts,
        "expires_at": expires_at,
    }
    for key, value in (
        ("from_user_id", from_user_id),
        ("from_username", from_username),
        ("from_display_name", from_display_name),
        ("from_profile_image", from_profile_image),
        ("action_url", action_url),
    ):
        if value:
            item[key] = value
    with_ttl(item, ttl_epoch=expires_at)

    if dedupe_key:
        if not ddb_put_new(T.notifications, item):
            logger.info("Notification %s for %s already sent", dedupe_key, user_id)
            return None
    else:
        ddb_put(T.notifications, item)
    return sk


def notify_safely(user_id: str, notification_type: str, title: str, message: str, **kwargs: Any) -> Optional[str]:
    try:
        return create_notification_with_expiry(user_id, notification_type, title, message, **kwargs)
    except Exception:
        logger.exception("Failed to create %s notification for %s", notification_type, user_id)
        return None


def list_active_notifications(user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    ts = now_ts()
    items = ddb_query_pk(T.notifications, user_pk(user_id), prefix="NOTIF#")
    active = [it for it in items if int(it.get("expires_at", 0) or 0) > ts]
    active.sort(key=lambda it: int(it.get("created_at", 0) or 0), reverse=True)
    return active[: max(1, min(limit, 50))]


def _require(user_id: str, sk: str) -> None:
    if not sk.startswith("NOTIF#") or not ddb_get(T.notifications, user_pk(user_id), sk):
        raise NotFoundError("notification not found")


def mark_notification_read(user_id: str, sk: str) -> None:
    _require(user_id, sk)
    ddb_set_fields(T.notifications, user_pk(user_id), sk, {"read": True})


def delete_notification(user_id: str, sk: str) -> None:
    _require(user_id, sk)
    ddb_del(T.notifications, user_pk(user_id), sk)
