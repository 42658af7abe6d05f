from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from deluxe.auth.deps import require_user
from deluxe.core.errors import http_errors
from deluxe.models import NotificationRef
from deluxe.services.notifications import delete_notification, list_active_notifications, mark_notification_read
from deluxe.services.subscriptions import compute_user_level, get_user_subscriptions

router = APIRouter(prefix="/api/me", tags=["me"])


@router.get("/subscriptions")
async def my_subscriptions(ctx=Depends(require_user)) -> Dict[str, Any]:
    subs = get_user_subscriptions(ctx["user_id"])
    return {
        "level": compute_user_level(subs),
        "subscriptions": [
            {
                "creatorId": s["creator_id"],
                "creatorUsername": s.get("creator_username"),
                "creatorDisplayName": s.get("creator_display_name"),
                "tier": s.get("tier"),
                "status": s.get("status"),
                "currentPeriodEnd": s.get("current_period_end"),
            }
            for s in subs
        ],
    }


@router.get("/notifications")
async def my_notifications(limit: int = Query(10, ge=1, le=50), ctx=Depends(require_user)) -> Dict[str, Any]:
    items = list_active_notifications(ctx["user_id"], limit=limit)
    return {
        "notifications": [
            {
                "id": it["sk"],
                "type": it["type"],
                "title": it["title"],
                "message": it["message"],
                "read": bool(it.get("read")),
                "fromUsername": it.get("from_username"),
                "fromDisplayName": it.get("from_display_name"),
                "fromProfileImage": it.get("from_profile_image"),
                "actionUrl": it.get("action_url"),
                "createdAt": it.get("created_at"),
                "expiresAt": it.get("expires_at"),
            }
            for it in items
        ],
        "unread": sum(1 for it in items if not it.get("read")),
    }


@router.post("/notifications/read")
async def read_notification(body: NotificationRef, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        mark_notification_read(ctx["user_id"], body.notification_id)
    return {"read": True}


@router.delete("/notifications")
async def remove_notification(body: NotificationRef, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        delete_notification(ctx["user_id"], body.notification_id)
    return {"deleted": True}
