from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Optional


def now_ts() -> int:
    return int(time.time())


def parse_ts(value: Any) -> Optional[int]:
    """Epoch seconds from an epoch number/string or an ISO-8601 timestamp."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    s = str(value).strip()
    if not s:
        return None
    if s.isascii() and s.isdigit():
        return int(s)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())
