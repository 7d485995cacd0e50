from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import Depends, HTTPException, Request

from app.core.normalize import normalize_email
from app.core.settings import S
from app.services.admin import AdminResolver, get_admin_resolver
from app.services.sessions import optional_ui_session


def _cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _cognito_issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=1)
def _cognito_jwks() -> Dict[str, Any]:
    url = f"{_cognito_issuer()}/.well-known/jwks.json"
    resp = requests.get(url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _resolve_cognito_key(kid: str) -> Dict[str, Any]:
    keys = _cognito_jwks().get("keys", [])
    for key in keys:
        if key.get("kid") == kid:
            return key
    raise HTTPException(401, "Unknown Cognito key id")


def _decode_cognito_token(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc

    key = _resolve_cognito_key(header.get("kid", ""))
    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            audience=S.cognito_app_client_id,
            issuer=_cognito_issuer(),
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    expected_use = S.cognito_expected_token_use
    if expected_use and payload.get("token_use") != expected_use:
        raise HTTPException(401, "Unexpected token use")
    return payload


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def get_principal(request: Request) -> Dict[str, str]:
    """
    The signed-in principal: a server session (X-SESSION-ID header or session
    cookie) or, when Cognito is wired, a verified ID token.
    """
    ctx = await optional_ui_session(request)
    if ctx:
        return ctx

    auth = request.headers.get("authorization", "")
    if _cognito_enabled() and auth:
        payload = _decode_cognito_token(extract_bearer_token(auth))
        user_sub = payload.get("sub") or payload.get("cognito:username") or ""
        email = normalize_email(payload.get("email"))
        if not user_sub or not email:
            raise HTTPException(401, "Token missing subject")
        return {"user_sub": str(user_sub), "email": email, "session_id": ""}

    raise HTTPException(401, "Sign-in required")


async def require_admin(
    principal: Dict[str, str] = Depends(get_principal),
    admin: AdminResolver = Depends(get_admin_resolver),
) -> Dict[str, str]:
    # Privileged operations re-derive admin status server-side every time.
    if not admin.is_admin(principal.get("email")):
        raise HTTPException(403, "Admin only")
    return principal
