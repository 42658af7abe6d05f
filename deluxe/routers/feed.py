from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from deluxe.auth.deps import require_user
from deluxe.models import CreatePostReq
from deluxe.services.posts import create_post, list_creator_posts
from deluxe.services.subscriptions import compute_user_level, get_user_subscription
from deluxe.services.users import get_user_by_username, get_user_profile

router = APIRouter(tags=["feed"])


def viewer_level_for(viewer_id: str, creator_id: str) -> str:
    """The viewer's level towards one creator; creators always see their own posts."""
    if viewer_id == creator_id:
        return "Diamante"
    sub = get_user_subscription(viewer_id, creator_id)
    return compute_user_level([sub] if sub else [])


@router.get("/api/creators/{username}/posts")
async def creator_posts(username: str, limit: int = Query(20, ge=1, le=100), ctx=Depends(require_user)) -> Dict[str, Any]:
    creator = get_user_by_username(username)
    if not creator or not creator.get("is_creator"):
        raise HTTPException(404, "Creator not found")
    level = viewer_level_for(ctx["user_id"], creator["user_id"])
    return {
        "creator": {
            "id": creator["user_id"],
            "username": creator.get("username"),
            "displayName": creator.get("display_name"),
            "profileImage": creator.get("profile_image"),
        },
        "viewerLevel": level,
        "posts": list_creator_posts(creator["user_id"], level, limit=limit),
    }


@router.post("/api/posts")
async def publish_post(body: CreatePostReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    profile = get_user_profile(ctx["user_id"])
    if not profile or not profile.get("is_creator"):
        raise HTTPException(403, "Only creators can publish posts")
    try:
        return create_post(ctx["user_id"], body.content, required_level=body.required_level, media_keys=body.media_keys)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
