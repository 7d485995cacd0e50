from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from app.core.normalize import is_valid_email, normalize_email
from app.models import AccessStatusReq, AccessStatusResp, SendLinkReq, SendLinkResp
from app.services.access import AccessDecisionEngine, get_access_engine
from app.services.audit import audit_event
from app.services.login_links import LoginLinkService, get_login_links
from app.services.sessions import optional_ui_session

router = APIRouter(prefix="/access", tags=["access"])


@router.post("/status", response_model=AccessStatusResp, response_model_exclude_none=True)
async def access_status(
    body: AccessStatusReq,
    session: Optional[Dict[str, str]] = Depends(optional_ui_session),
    engine: AccessDecisionEngine = Depends(get_access_engine),
):
    # A signed-in session is authoritative and is the only path that may bind.
    if session:
        decision = engine.decide(session.get("email"), session.get("user_sub"), bind=True)
    else:
        decision = engine.decide(body.email, body.user_id)
    return decision.as_status()


@router.post("/send-link", response_model=SendLinkResp)
async def send_link(
    body: SendLinkReq,
    req: Request,
    engine: AccessDecisionEngine = Depends(get_access_engine),
    links: LoginLinkService = Depends(get_login_links),
):
    email = normalize_email(body.email)
    if not is_valid_email(email):
        raise HTTPException(400, "Invalid email.")

    try:
        decision = engine.evaluate(email)
    except Exception as exc:
        audit_event("access_send_link", email, req, outcome="failure", reason="check_failed", error=repr(exc))
        raise HTTPException(503, "Unable to verify access right now.")
    if not decision.ok:
        audit_event("access_send_link", email, req, outcome="failure", reason=decision.reason)
        raise HTTPException(503, "Unable to verify access right now.")
    if not decision.entitled:
        audit_event("access_send_link", email, req, outcome="denied")
        raise HTTPException(403, "No active access for this email.")

    try:
        links.issue(email)
    except Exception as exc:
        audit_event("access_send_link", email, req, outcome="failure", reason="issue_failed", error=repr(exc))
        raise HTTPException(500, "Unable to send link right now.")

    audit_event("access_send_link", email, req, outcome="success", is_admin=decision.is_admin)
    return {"ok": True, "message": "Check your email for your access link."}
