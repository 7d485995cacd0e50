from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from app.core.normalize import normalize_email
from app.core.settings import S, Settings


class AdminResolver:
    """Single configured operator identity. No storage, no network."""

    def __init__(self, settings: Settings) -> None:
        self._admin_email = normalize_email(settings.admin_email)

    @property
    def has_admin_identity_configured(self) -> bool:
        return bool(self._admin_email)

    def is_admin(self, identity: Any) -> bool:
        email = normalize_email(identity)
        if not email or not self._admin_email:
            return False
        return email == self._admin_email

    def status(self, identity: Any) -> Dict[str, bool]:
        # Booleans only; the configured address is never echoed back.
        return {
            "ok": True,
            "hasAdminEmail": self.has_admin_identity_configured,
            "isAdmin": self.is_admin(identity),
        }


@lru_cache(maxsize=1)
def get_admin_resolver() -> AdminResolver:
    return AdminResolver(S)
