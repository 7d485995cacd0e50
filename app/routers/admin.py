from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from app.auth.deps import require_admin
from app.core.normalize import normalize_email
from app.core.settings import S
from app.models import AdminDiagResp, AdminStatusReq, AdminStatusResp, SubscriptionListResp, SubscriptionOut
from app.services.admin import AdminResolver, get_admin_resolver
from app.services.audit import audit_event
from app.services.subscriptions import SubscriptionStore, get_subscription_store

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/status", response_model=AdminStatusResp)
async def admin_status(body: AdminStatusReq, admin: AdminResolver = Depends(get_admin_resolver)):
    return admin.status(body.email)


@router.get("/diag", response_model=AdminDiagResp)
async def admin_diag(admin: AdminResolver = Depends(get_admin_resolver)):
    return {
        "ok": True,
        "hasAdminEmail": admin.has_admin_identity_configured,
        "webhookSecretConfigured": bool((S.webhook_secret or "").strip()),
        "environment": S.app_env,
    }


@router.get("/subscriptions", response_model=SubscriptionListResp)
async def admin_subscriptions(
    email: str,
    req: Request,
    principal: Dict[str, str] = Depends(require_admin),
    store: Optional[SubscriptionStore] = Depends(get_subscription_store),
):
    if store is None:
        raise HTTPException(503, "Subscription store not configured")
    target = normalize_email(email)
    items = store.list_for_email(target)
    items.sort(key=lambda x: int(x.get("last_event_at") or 0), reverse=True)
    audit_event("admin_subscriptions_lookup", principal.get("email", ""), req, outcome="success", target=target, count=len(items))
    return {"items": [SubscriptionOut.from_item(it) for it in items]}
