from __future__ import annotations

import secrets
from typing import Any, Dict, List, Optional

from deluxe.core.products import LEVEL_ORDER
from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_get, ddb_increment, ddb_put, ddb_query_pk
from deluxe.services.subscriptions import check_content_access


def post_pk(post_id: str) -> str:
    return f"POST#{post_id}"


def author_pk(author_id: str) -> str:
    return f"AUTHOR#{author_id}"


def create_post(
    author_id: str,
    content: str,
    *,
    required_level: str = "bronze",
    media_keys: Optional[List[str]] = None,
) -> Dict[str, Any]:
    required_level = required_level.lower()
    if required_level not in LEVEL_ORDER:
        raise ValueError(f"unknown level: {required_level}")
    ts = now_ts()
    post_id = f"{ts}_{secrets.token_hex(6)}"
    item = {
        "pk": post_pk(post_id),
        "sk": "POST",
        "post_id": post_id,
        "author_id": author_id,
        "content": content,
        "required_level": required_level,
        "media_keys": media_keys or [],
        "likes": 0,
        "comments": 0,
        "tips": 0,
        "tips_amount_cents": 0,
        "created_at": ts,
    }
    ddb_put(T.posts, item)
    # author index entry so a creator's posts can be listed without a scan
    ddb_put(T.posts, {"pk": author_pk(author_id), "sk": f"POST#{ts}#{post_id}", "post_id": post_id})
    return item


def get_post(post_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.posts, post_pk(post_id), "POST")


def increment_post_tips(post_id: str, amount_cents: int) -> None:
    ddb_increment(T.posts, post_pk(post_id), "POST", {"tips": 1, "tips_amount_cents": int(amount_cents)})


def list_creator_posts(author_id: str, viewer_level: str, limit: int = 20) -> List[Dict[str, Any]]:
    """Newest posts first; posts above the viewer's level come back locked with no media."""
    refs = ddb_query_pk(T.posts, author_pk(author_id), prefix="POST#", newest_first=True, limit=limit)
    out: List[Dict[str, Any]] = []
    for ref in refs:
        post = get_post(ref["post_id"])
        if not post:
            continue
        if check_content_access(viewer_level, post.get("required_level", "bronze")):
            out.append({**post, "locked": False})
        else:
            out.append({
                "post_id": post["post_id"],
                "author_id": post["author_id"],
                "required_level": post.get("required_level"),
                "created_at": post.get("created_at"),
                "locked": True,
            })
    return out
