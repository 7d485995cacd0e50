from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Optional

from app.core.aws import cognito_client
from app.core.normalize import normalize_email
from app.core.settings import S, Settings
from app.services.audit import audit_event


def _attr(user: Dict[str, Any], name: str) -> Optional[str]:
    for a in user.get("Attributes", []) or []:
        if a.get("Name") == name:
            return a.get("Value")
    return None


class IdentityDirectory:
    """Looks up existing identity-provider users by email."""

    def __init__(self, settings: Settings, client: Any = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.settings.cognito_user_pool_id)

    def client(self):
        if self._client is None:
            self._client = cognito_client(self.settings.cognito_region)
        return self._client

    def find_user_id(self, email: str) -> Optional[str]:
        """Best effort: None when disabled, unknown, or on any lookup failure."""
        email = normalize_email(email)
        if not email or not self.enabled:
            return None
        safe = email.replace("\\", "").replace('"', "")
        try:
            resp = self.client().list_users(
                UserPoolId=self.settings.cognito_user_pool_id,
                Filter=f'email = "{safe}"',
                Limit=1,
            )
        except Exception as exc:
            audit_event("identity_lookup", email, outcome="warning", error=repr(exc))
            return None
        users = resp.get("Users", []) or []
        if not users:
            return None
        return _attr(users[0], "sub") or users[0].get("Username") or None


@lru_cache(maxsize=1)
def get_identity_directory() -> IdentityDirectory:
    return IdentityDirectory(S)
