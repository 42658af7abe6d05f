from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from deluxe.auth.deps import require_user
from deluxe.core.errors import NotFoundError, http_errors
from deluxe.models import CreateStoryReq, ViewStoryReq
from deluxe.services.stories import (
    create_temporary_story,
    delete_temporary_story,
    get_creator_active_stories,
    has_unviewed_stories,
    mark_story_viewed,
)
from deluxe.services.users import get_user_profile

router = APIRouter(tags=["stories"])


def _public(story: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": story["sk"],
        "storyId": story.get("story_id"),
        "imageKey": story.get("image_key"),
        "videoKey": story.get("video_key"),
        "caption": story.get("caption", ""),
        "createdAt": story.get("created_at"),
        "expiresAt": story.get("expires_at"),
        "views": int(story.get("views", 0) or 0),
    }


@router.get("/api/creators/{creator_id}/stories")
async def creator_stories(creator_id: str, ctx=Depends(require_user)) -> Dict[str, Any]:
    stories = get_creator_active_stories(creator_id)
    return {
        "stories": [_public(s) for s in stories],
        "hasUnviewed": has_unviewed_stories(creator_id, ctx["user_id"]),
    }


@router.post("/api/stories")
async def post_story(body: CreateStoryReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    profile = get_user_profile(ctx["user_id"])
    if not profile or not profile.get("is_creator"):
        raise HTTPException(403, "Only creators can publish stories")
    try:
        story = create_temporary_story(
            ctx["user_id"],
            body.image_key,
            duration_hours=body.duration_hours,
            caption=body.caption,
            video_key=body.video_key,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return _public(story)


@router.post("/api/creators/{creator_id}/stories/view")
async def view_story(creator_id: str, body: ViewStoryReq, ctx=Depends(require_user)) -> Dict[str, Any]:
    with http_errors():
        counted = mark_story_viewed(creator_id, body.story_id, ctx["user_id"])
    return {"viewed": True, "counted": counted}


@router.delete("/api/stories/{story_id:path}")
async def remove_story(story_id: str, ctx=Depends(require_user)) -> Dict[str, Any]:
    try:
        delete_temporary_story(ctx["user_id"], story_id)
    except NotFoundError as exc:
        raise HTTPException(404, "Story not found") from exc
    return {"deleted": True}
