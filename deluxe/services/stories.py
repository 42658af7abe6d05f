from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from deluxe.core.aws import s3
from deluxe.core.errors import NotFoundError
from deluxe.core.settings import S
from deluxe.core.tables import T
from deluxe.core.time import HOUR, now_ts
from deluxe.metrics import record_stories_expired
from deluxe.services.ddb import ddb_del, ddb_get, ddb_put, ddb_query_pk, ddb_scan_lte, ddb_update
from deluxe.services.ledger import creator_pk

logger = logging.getLogger(__name__)

STORY_DURATIONS_HOURS = (24, 48, 72, 168)
MAX_ACTIVE_STORIES = 10

# creator_id -> (monotonic timestamp, stories); per-process and best effort only
_STORIES_CACHE: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}


def create_temporary_story(
    creator_id: str,
    image_key: str,
    *,
    duration_hours: int = 24,
    caption: str = "",
    video_key: Optional[str] = None,
) -> Dict[str, Any]:
    if duration_hours not in STORY_DURATIONS_HOURS:
        raise ValueError(f"duration must be one of {STORY_DURATIONS_HOURS}")
    ts = now_ts()
    story_id = secrets.token_hex(8)
    item = {
        "pk": creator_pk(creator_id),
        "sk": f"STORY#{ts}#{story_id}",
        "story_id": story_id,
        "creator_id": creator_id,
        "image_key": image_key,
        "video_key": video_key,
        "caption": caption,
        "duration_hours": duration_hours,
        "created_at": ts,
        "expires_at": ts + duration_hours * HOUR,
        "views": 0,
        "viewed_by": [],
    }
    ddb_put(T.stories, item)
    clear_stories_cache(creator_id)
    logger.info("Created story %s for creator %s", story_id, creator_id)
    return item


def clear_stories_cache(creator_id: Optional[str] = None) -> None:
    if creator_id:
        _STORIES_CACHE.pop(creator_id, None)
    else:
        _STORIES_CACHE.clear()


def _prune_stories_cache(now: float) -> None:
    stale = [key for key, (at, _) in _STORIES_CACHE.items() if now - at >= S.stories_cache_seconds]
    for key in stale:
        del _STORIES_CACHE[key]


def get_creator_active_stories(creator_id: str) -> List[Dict[str, Any]]:
    _prune_stories_cache(time.monotonic())
    cached = _STORIES_CACHE.get(creator_id)
    if cached:
        return cached[1]

    ts = now_ts()
    items = ddb_query_pk(T.stories, creator_pk(creator_id), prefix="STORY#", newest_first=True)
    active = [it for it in items if int(it.get("expires_at", 0) or 0) > ts]
    active.sort(key=lambda it: int(it.get("created_at", 0) or 0), reverse=True)
    active = active[:MAX_ACTIVE_STORIES]

    _STORIES_CACHE[creator_id] = (time.monotonic(), active)
    return active


def has_active_stories(creator_id: str) -> bool:
    return bool(get_creator_active_stories(creator_id))


def has_unviewed_stories(creator_id: str, user_id: str) -> bool:
    return any(user_id not in (story.get("viewed_by") or []) for story in get_creator_active_stories(creator_id))


def mark_story_viewed(creator_id: str, story_sk: str, user_id: str) -> bool:
    story = ddb_get(T.stories, creator_pk(creator_id), story_sk)
    if not story:
        raise NotFoundError("story not found")
    if user_id in (story.get("viewed_by") or []):
        return False
    ddb_update(
        T.stories,
        creator_pk(creator_id),
        story_sk,
        "SET #v = if_not_exists(#v, :z) + :one, #vb = list_append(if_not_exists(#vb, :empty), :me)",
        {":z": 0, ":one": 1, ":empty": [], ":me": [user_id]},
        names={"#v": "views", "#vb": "viewed_by"},
    )
    clear_stories_cache(creator_id)
    return True


def _delete_media(story: Dict[str, Any]) -> None:
    if not S.media_bucket:
        return
    for key in (story.get("image_key"), story.get("video_key")):
        if not key:
            continue
        try:
            s3.delete_object(Bucket=S.media_bucket, Key=key)
        except ClientError:
            logger.warning("Could not delete story media %s", key, exc_info=True)


def delete_temporary_story(creator_id: str, story_sk: str) -> None:
    story = ddb_get(T.stories, creator_pk(creator_id), story_sk)
    if not story:
        raise NotFoundError("story not found")
    _delete_media(story)
    ddb_del(T.stories, creator_pk(creator_id), story_sk)
    clear_stories_cache(creator_id)


def delete_expired_stories(now: Optional[int] = None) -> int:
    """Delete every story whose expiry has passed, media first. Returns how many were removed."""
    cutoff = now_ts() if now is None else int(now)
    expired = ddb_scan_lte(T.stories, "expires_at", cutoff)
    for story in expired:
        _delete_media(story)
    for story in expired:
        ddb_del(T.stories, story["pk"], story["sk"])
        clear_stories_cache(story.get("creator_id"))
    record_stories_expired(len(expired))
    logger.info("Deleted %s expired stories and their media", len(expired))
    return len(expired)
