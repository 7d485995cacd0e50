from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.settings import S
from app.services.audit import audit_event
from app.services.cognito import IdentityDirectory, get_identity_directory
from app.services.login_links import LoginLinkService, get_login_links
from app.services.sessions import create_session, revoke_session, session_id_from_request

router = APIRouter(prefix="/auth", tags=["auth"])

FEED_PATH = "/"
SIGNIN_FAILED_PATH = "/welcome?error=signin_failed"


@router.get("/callback")
async def auth_callback(
    req: Request,
    token: str = "",
    links: LoginLinkService = Depends(get_login_links),
    directory: IdentityDirectory = Depends(get_identity_directory),
):
    # Every failure looks the same to the browser.
    failed = RedirectResponse(SIGNIN_FAILED_PATH, status_code=303)
    try:
        email = links.consume(token)
        if not email:
            audit_event("auth_callback", "", req, outcome="failure", reason="invalid_link")
            return failed
        user_sub = directory.find_user_id(email) or ""
        session_id = create_session(req, user_sub, email)
    except Exception as exc:
        audit_event("auth_callback", "", req, outcome="failure", error=repr(exc))
        return failed

    audit_event("auth_callback", email, req, outcome="success", session_id=session_id)
    resp = RedirectResponse(FEED_PATH, status_code=303)
    resp.set_cookie(
        S.session_cookie_name,
        session_id,
        max_age=S.ui_session_ttl_seconds,
        httponly=True,
        secure=S.public_base_url.startswith("https://"),
        samesite="lax",
    )
    return resp


@router.post("/signout")
async def auth_signout(req: Request):
    session_id = session_id_from_request(req)
    if session_id:
        try:
            revoke_session(session_id)
            audit_event("auth_signout", "", req, outcome="success", session_id=session_id)
        except Exception as exc:
            audit_event("auth_signout", "", req, outcome="failure", session_id=session_id, error=repr(exc))
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(S.session_cookie_name)
    return resp
