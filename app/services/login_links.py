from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode

from botocore.exceptions import ClientError

from app.core.aws import ses_client
from app.core.crypto import new_link_token, sha256_str
from app.core.normalize import normalize_email
from app.core.settings import S, Settings
from app.core.tables import T
from app.core.time import now_ts
from app.services.sessions import with_ttl
from app.services.subscriptions import is_conflict

LINK_PREFIX = "link_"


def link_key(token: str) -> str:
    return LINK_PREFIX + sha256_str(token)


class LoginLinkService:
    """Single-use passwordless sign-in links delivered by email.

    Only the sha256 of a token is stored; the callback always points at
    the configured public origin.
    """

    def __init__(self, settings: Settings, table: Any, ses: Any = None) -> None:
        self.settings = settings
        self.table = table
        self._ses = ses

    @property
    def enabled(self) -> bool:
        return bool(self.settings.ses_from_email)

    def callback_url(self, token: str) -> str:
        return f"{self.settings.public_base_url}/auth/callback?{urlencode({'token': token})}"

    def issue(self, email: str) -> str:
        email = normalize_email(email)
        if not email:
            raise ValueError("email required")
        if not self.enabled:
            raise RuntimeError("SES_FROM_EMAIL not set")
        token = new_link_token()
        ts = now_ts()
        expires = ts + self.settings.login_link_ttl_seconds
        self.table.put_item(Item=with_ttl({
            "session_id": link_key(token),
            "email": email,
            "created_at": ts,
            "expires_at": expires,
            "used": False,
        }, ttl_epoch=expires))

        ses = self._ses or ses_client()
        ses.send_email(
            Source=self.settings.ses_from_email,
            Destination={"ToAddresses": [email]},
            Message={
                "Subject": {"Data": "Your access link"},
                "Body": {"Text": {"Data": (
                    "Use this link to sign in. It expires in "
                    f"{self.settings.login_link_ttl_seconds // 60} minutes and works once.\n\n"
                    f"{self.callback_url(token)}\n"
                )}},
            },
        )
        return token

    def consume(self, token: str) -> Optional[str]:
        """Email for a valid unused token, marking it used; None otherwise."""
        token = (token or "").strip()
        if not token:
            return None
        ts = now_ts()
        try:
            resp = self.table.update_item(
                Key={"session_id": link_key(token)},
                UpdateExpression="SET #used = :t, used_at = :now",
                ConditionExpression="attribute_exists(session_id) AND #used = :f AND expires_at > :now",
                ExpressionAttributeNames={"#used": "used"},
                ExpressionAttributeValues={":t": True, ":f": False, ":now": ts},
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if is_conflict(exc):
                return None
            raise
        return normalize_email((resp.get("Attributes") or {}).get("email")) or None


@lru_cache(maxsize=1)
def get_login_links() -> LoginLinkService:
    return LoginLinkService(S, T.sessions)
