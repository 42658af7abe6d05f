from __future__ import annotations

from typing import Any, Dict, Optional

from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_get, ddb_put, ddb_put_new, ddb_set_fields


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def username_pk(username: str) -> str:
    return f"USERNAME#{username.lower()}"


def get_user_profile(user_id: str) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    return ddb_get(T.users, user_pk(user_id), "PROFILE")


def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    pointer = ddb_get(T.users, username_pk(username), "USER")
    if not pointer:
        return None
    return get_user_profile(pointer["user_id"])


def create_user_profile(
    user_id: str,
    username: str,
    *,
    display_name: str = "",
    profile_image: str = "",
    is_creator: bool = False,
) -> Dict[str, Any]:
    if not ddb_put_new(T.users, {"pk": username_pk(username), "sk": "USER", "user_id": user_id}):
        raise ValueError("username already taken")
    ts = now_ts()
    item = {
        "pk": user_pk(user_id),
        "sk": "PROFILE",
        "user_id": user_id,
        "username": username,
        "display_name": display_name or username,
        "profile_image": profile_image,
        "is_creator": is_creator,
        "level": "Bronze",
        "created_at": ts,
        "updated_at": ts,
    }
    ddb_put(T.users, item)
    return item


def update_user_profile(user_id: str, fields: Dict[str, Any]) -> None:
    ddb_set_fields(T.users, user_pk(user_id), "PROFILE", {**fields, "updated_at": now_ts()})


def public_sender(profile: Optional[Dict[str, Any]], fallback_username: str = "usuario") -> Dict[str, str]:
    """Sender fields shown on notifications triggered by this user."""
    profile = profile or {}
    username = profile.get("username") or fallback_username
    return {
        "from_username": username,
        "from_display_name": profile.get("display_name") or username,
        "from_profile_image": profile.get("profile_image") or "/placeholder.svg",
    }
