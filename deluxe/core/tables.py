from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    users: Any
    finance: Any
    notifications: Any
    stories: Any
    posts: Any

T = Tables(
    users=ddb.Table(S.users_table_name),
    finance=ddb.Table(S.finance_table_name),
    notifications=ddb.Table(S.notifications_table_name),
    stories=ddb.Table(S.stories_table_name),
    posts=ddb.Table(S.posts_table_name),
)
