from __future__ import annotations

import time

HOUR = 3600
DAY = 24 * HOUR


def now_ts() -> int:
    return int(time.time())
