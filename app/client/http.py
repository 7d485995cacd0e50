from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from app.core.normalize import normalize_email

DEFAULT_TIMEOUT_SECONDS = 5.0


class AccessApiClient:
    """Thin JSON client for the access endpoints.

    Non-2xx answers raise ``requests.HTTPError``; callers treat any raise as
    a deny.
    """

    def __init__(self, base_url: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _post(self, path: str, body: Dict[str, Any], session_id: str = "") -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if session_id:
            headers["X-Session-Id"] = session_id
        resp = self.http.post(f"{self.base_url}{path}", json=body, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json() if resp.content else {}
        return data if isinstance(data, dict) else {}

    def admin_status(self, email: str) -> bool:
        email = normalize_email(email)
        if not email:
            return False
        data = self._post("/admin/status", {"email": email})
        return data.get("isAdmin") is True

    def access_status(self, email: str, user_id: Optional[str] = None, session_id: str = "") -> Dict[str, Any]:
        body: Dict[str, Any] = {"email": normalize_email(email)}
        if user_id:
            body["userId"] = user_id
        data = self._post("/access/status", body, session_id=session_id)
        return {
            "ok": data.get("ok") is True,
            "isAdmin": data.get("isAdmin") is True,
            "active": data.get("active") is True,
            "reason": data.get("reason"),
        }

    def sign_out(self, session_id: str) -> None:
        self._post("/auth/signout", {}, session_id=session_id)
