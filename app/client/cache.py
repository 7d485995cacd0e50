from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.core.normalize import normalize_email


@dataclass(frozen=True)
class CachedDecision:
    is_admin: bool
    has_active_subscription: bool
    stored_at: float


class DecisionCache:
    """Short-lived per-identity lookup results for one browsing session.

    Only successful lookups are stored. The owner clears it whenever the
    signed-in identity changes, so an entry is never read for anyone else.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, CachedDecision] = {}

    def get(self, identity: str) -> Optional[CachedDecision]:
        key = normalize_email(identity)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return entry

    def put(self, identity: str, is_admin: bool, has_active_subscription: bool) -> None:
        key = normalize_email(identity)
        if not key or self.ttl_seconds <= 0:
            return
        self._entries[key] = CachedDecision(is_admin, has_active_subscription, self.clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
