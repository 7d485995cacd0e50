from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

from app.core.normalize import normalize_email
from app.core.settings import S, Settings
from app.metrics import record_access_check
from app.services.admin import AdminResolver, get_admin_resolver
from app.services.audit import audit_event
from app.services.subscriptions import SubscriptionStore, get_subscription_store

@dataclass(frozen=True)
class AccessDecision:
    is_admin: bool = False
    has_active_subscription: bool = False
    ok: bool = True
    reason: Optional[str] = None

    @property
    def entitled(self) -> bool:
        return self.is_admin or self.has_active_subscription

    def as_status(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ok": self.ok,
            "isAdmin": self.is_admin,
            "active": self.entitled,
        }
        if self.reason:
            out["reason"] = self.reason
        return out


class AccessDecisionEngine:
    """Admin flag plus live subscription lookup, read-only on the store.

    Admin resolution always runs first; for the operator identity the store
    is never queried.
    """

    def __init__(self, admin: AdminResolver, store: Optional[SubscriptionStore], settings: Settings) -> None:
        self.admin = admin
        self.store = store
        self.settings = settings

    def evaluate(self, email: Any, user_id: Optional[str] = None, *, bind: bool = False) -> AccessDecision:
        email = normalize_email(email)
        user_id = (user_id or "").strip() or None
        if self.admin.is_admin(email):
            return AccessDecision(is_admin=True, has_active_subscription=True)
        if not email and not user_id:
            return AccessDecision(reason="missing_identity")
        if self.store is None:
            return AccessDecision(ok=False, reason="store_not_configured")
        active = self.store.has_active(email, user_id, bind=bind)
        return AccessDecision(has_active_subscription=active)

    def decide(self, email: Any, user_id: Optional[str] = None, *, bind: bool = False) -> AccessDecision:
        """Like evaluate(), but any failure is a deny instead of an exception."""
        try:
            decision = self.evaluate(email, user_id, bind=bind)
        except Exception as exc:
            audit_event("access_check", normalize_email(email), outcome="failure", reason="check_failed", error=repr(exc))
            record_access_check("error")
            return AccessDecision(ok=False, reason="check_failed")
        record_access_check("admin" if decision.is_admin else ("allowed" if decision.entitled else "denied"))
        return decision


@lru_cache(maxsize=1)
def get_access_engine() -> AccessDecisionEngine:
    return AccessDecisionEngine(get_admin_resolver(), get_subscription_store(), S)
