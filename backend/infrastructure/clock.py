"""Wall-clock helpers. Patch `now_ms` in tests to control time."""

import time
from datetime import datetime, timezone
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def now_seconds() -> int:
    return now_ms() // 1000


def utc_date_key(timestamp_ms: Optional[int] = None) -> str:
    """UTC calendar date as YYYY-MM-DD"""
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
