from __future__ import annotations

import hmac
import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from deluxe.core.settings import S
from deluxe.services.stories import delete_expired_stories

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _check_cron_secret(req: Request) -> None:
    if not S.cron_secret:
        return
    expected = f"Bearer {S.cron_secret}"
    if not hmac.compare_digest(req.headers.get("authorization", ""), expected):
        raise HTTPException(401, "Unauthorized")


@router.get("/cleanup-expired-stories")
async def cleanup_expired_stories(req: Request) -> Dict[str, Any]:
    _check_cron_secret(req)
    try:
        deleted = delete_expired_stories()
    except Exception as exc:
        logger.exception("Expired story cleanup failed")
        raise HTTPException(500, "Failed to cleanup expired stories") from exc
    return {
        "success": True,
        "message": f"Cleaned up {deleted} expired stories",
        "deletedCount": deleted,
    }
