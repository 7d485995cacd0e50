from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from fastapi import Request

from app.core.normalize import client_ip_from_request, normalize_email
from app.core.settings import S
from app.core.tables import T
from app.core.time import now_ts


def with_ttl(item: Dict[str, Any], ttl_epoch: int) -> Dict[str, Any]:
    item[S.ddb_ttl_attr] = int(ttl_epoch)
    return item


def is_real_ui_session_id(session_id: str) -> bool:
    if not session_id or session_id.startswith("link_"):
        return False
    return len(session_id) == 36 and session_id.count("-") == 4


def session_id_from_request(request) -> Optional[str]:
    sid = request.headers.get("x-session-id")
    if not sid:
        cookies = getattr(request, "cookies", None) or {}
        sid = cookies.get(S.session_cookie_name)
    sid = (sid or "").strip()
    return sid if is_real_ui_session_id(sid) else None


def create_session(req: Request, user_sub: str, email: str) -> str:
    session_id = str(uuid.uuid4())
    ts = now_ts()
    T.sessions.put_item(Item=with_ttl({
        "session_id": session_id,
        "user_sub": user_sub or "",
        "email": normalize_email(email),
        "created_at": ts,
        "last_seen_at": ts,
        "ip": client_ip_from_request(req),
        "user_agent": (req.headers.get("user-agent", "")[:512]),
        "revoked": False,
    }, ttl_epoch=ts + S.ui_session_ttl_seconds))
    return session_id


def revoke_session(session_id: str) -> None:
    T.sessions.update_item(
        Key={"session_id": session_id},
        UpdateExpression="SET revoked = :t, revoked_at = :now",
        ExpressionAttributeValues={":t": True, ":now": now_ts()},
    )


def load_session(session_id: str) -> Optional[Dict[str, Any]]:
    it = T.sessions.get_item(Key={"session_id": session_id}).get("Item")
    if not it or it.get("revoked", False):
        return None
    ts = now_ts()
    last = int(it.get("last_seen_at", 0) or 0)
    if last and (ts - last) > S.ui_inactivity_seconds:
        revoke_session(session_id)
        return None

    # Touch last_seen (best effort)
    try:
        T.sessions.update_item(Key={"session_id": session_id}, UpdateExpression="SET last_seen_at = :t", ExpressionAttributeValues={":t": ts})
    except Exception:
        pass
    return it


async def optional_ui_session(request: Request) -> Optional[Dict[str, str]]:
    sid = session_id_from_request(request)
    if not sid:
        return None
    it = load_session(sid)
    if not it:
        return None
    return {"session_id": sid, "user_sub": it.get("user_sub", ""), "email": it.get("email", "")}

