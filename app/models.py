from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

class AccessStatusReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    email: Optional[str] = None
    user_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))

class AccessStatusResp(BaseModel):
    ok: bool
    isAdmin: bool
    active: bool
    reason: Optional[str] = None

class SendLinkReq(BaseModel):
    email: Optional[str] = None

class SendLinkResp(BaseModel):
    ok: bool
    message: str

class AdminStatusReq(BaseModel):
    email: Optional[str] = None

class AdminStatusResp(BaseModel):
    ok: bool
    hasAdminEmail: bool
    isAdmin: bool

class AdminDiagResp(BaseModel):
    ok: bool
    hasAdminEmail: bool
    webhookSecretConfigured: bool
    environment: str

class SubscriptionOut(BaseModel):
    id: str
    email: str
    status: str
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    user_id: Optional[str] = None
    last_event_at: Optional[int] = None
    expires_at: Optional[int] = None
    canceled_at: Optional[int] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "SubscriptionOut":
        def _int(v: Any) -> Optional[int]:
            return int(v) if v is not None else None

        return cls(
            id=str(item.get("id", "")),
            email=item.get("email", ""),
            status=item.get("status", ""),
            order_id=item.get("order_id"),
            product_id=item.get("product_id"),
            user_id=item.get("user_id"),
            last_event_at=_int(item.get("last_event_at")),
            expires_at=_int(item.get("expires_at")),
            canceled_at=_int(item.get("canceled_at")),
        )

class SubscriptionListResp(BaseModel):
    items: List[SubscriptionOut] = Field(default_factory=list)
