from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple
from urllib.parse import parse_qsl

from fastapi import HTTPException

from app.core.crypto import secrets_equal
from app.core.normalize import normalize_email
from app.core.settings import S, Settings
from app.core.time import now_ts, parse_ts
from app.services.audit import audit_event
from app.services.cognito import IdentityDirectory, get_identity_directory
from app.services.subscriptions import (
    ACTIVE,
    CANCELED,
    CHARGEBACK,
    EXPIRED,
    PENDING,
    REFUNDED,
    SubscriptionStore,
    ddb_safe,
    get_subscription_store,
)

SECRET_FIELDS = ("secret", "webhook_secret")


class WebhookStage(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    PARSED = "parsed"
    MATCHED = "matched"
    APPLIED = "applied"
    REJECTED = "rejected"


class WebhookRejected(HTTPException):
    """A 4xx/5xx answer decided before anything was written."""

    def __init__(self, status_code: int, error: str, stage: WebhookStage) -> None:
        super().__init__(status_code, error)
        self.stage = stage


@dataclass(frozen=True)
class ExtractionRule:
    field: str
    aliases: Tuple[str, ...]

    def extract(self, payload: Mapping[str, Any]) -> str:
        for alias in self.aliases:
            v = payload.get(alias)
            if isinstance(v, bool):
                continue
            if isinstance(v, int):
                v = str(v)
            if isinstance(v, str) and v.strip():
                return v.strip()
        return ""


# Vendor field aliases, first match wins within each rule.
EXTRACTION_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("email", (
        "email",
        "customer_email",
        "buyer_email",
        "billing_email",
        "payer_email",
        "consumer_email",
        "user_email",
    )),
    ExtractionRule("order_id", ("order_id", "orderId", "transaction_id", "transactionId")),
    ExtractionRule("product_id", ("product_id", "productId")),
    ExtractionRule("raw_status", ("event", "event_type", "type", "status", "payment_status", "order_status")),
    ExtractionRule("expires_at", ("expires_at", "expiry_date", "next_payment_at")),
)

# Evaluated top to bottom; the first rule with a matching pattern decides.
# Reversals come first so a refund or chargeback never reads as active,
# canceled or expired, whatever else the event name contains.
STATUS_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"refund"), REFUNDED),
    (re.compile(r"chargeback"), CHARGEBACK),
    (re.compile(r"success|completed|(?<!un)paid"), ACTIVE),
    (re.compile(r"cancel"), CANCELED),
    (re.compile(r"unpaid|expired"), EXPIRED),
)


def normalize_status(raw: Any) -> str:
    v = (raw if isinstance(raw, str) else "").lower()
    for pattern, status in STATUS_RULES:
        if pattern.search(v):
            return status
    return PENDING


@dataclass
class WebhookEvent:
    email: str
    order_id: Optional[str]
    product_id: Optional[str]
    raw_status: str
    status: str
    expires_at: Optional[int]
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    stage: WebhookStage
    probe: bool = False
    email: str = ""
    order_id: Optional[str] = None
    status: Optional[str] = None
    action: Optional[str] = None

    def ack(self) -> Dict[str, Any]:
        return {"ok": True, "email": self.email, "orderId": self.order_id, "status": self.status}


def payload_from_body(content_type: str, raw: bytes) -> Dict[str, Any]:
    """JSON objects or URL-encoded forms; anything unreadable becomes {}."""
    ct = (content_type or "").lower()
    if "application/json" in ct:
        try:
            data = json.loads(raw.decode("utf-8") or "{}")
        except (ValueError, UnicodeDecodeError):
            return {}
        return data if isinstance(data, dict) else {}
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return {}
    return dict(parse_qsl(text, keep_blank_values=True))


def caller_secret(settings: Settings, headers: Mapping[str, str], query: Mapping[str, str], payload: Mapping[str, Any]) -> str:
    provided = headers.get(settings.webhook_secret_header) or headers.get(settings.webhook_secret_header.lower())
    if not provided:
        provided = query.get("secret")
    if not provided:
        for name in SECRET_FIELDS:
            v = payload.get(name)
            if isinstance(v, str) and v:
                provided = v
                break
    return (provided or "").strip()


def strip_secret(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in SECRET_FIELDS}


class WebhookIngestor:
    def __init__(
        self,
        settings: Settings,
        store: Optional[SubscriptionStore],
        directory: IdentityDirectory,
    ) -> None:
        self.settings = settings
        self.store = store
        self.directory = directory

    def authenticate(self, provided: str) -> None:
        expected = (self.settings.webhook_secret or "").strip()
        if not expected:
            if self.settings.is_production:
                raise WebhookRejected(500, "webhook_secret_not_configured", WebhookStage.RECEIVED)
            audit_event("webhook_auth", "", outcome="warning", reason="webhook_secret_not_configured")
            return
        if not secrets_equal(provided, expected):
            raise WebhookRejected(401, "unauthorized", WebhookStage.RECEIVED)

    @staticmethod
    def is_probe(payload: Mapping[str, Any]) -> bool:
        return not strip_secret(payload)

    def parse(self, payload: Mapping[str, Any]) -> WebhookEvent:
        body = strip_secret(payload)
        values = {rule.field: rule.extract(body) for rule in EXTRACTION_RULES}
        email = normalize_email(values["email"])
        if not email:
            raise WebhookRejected(400, "missing_email", WebhookStage.PARSED)
        return WebhookEvent(
            email=email,
            order_id=values["order_id"] or None,
            product_id=values["product_id"] or None,
            raw_status=values["raw_status"],
            status=normalize_status(values["raw_status"]),
            expires_at=parse_ts(values["expires_at"]),
            payload=body,
        )

    def ingest(self, payload: Mapping[str, Any], provided_secret: str) -> WebhookResult:
        """Authenticate, parse and idempotently apply one provider event.

        Raises WebhookRejected for rejections (401/400/500); storage errors
        propagate unchanged so the caller can answer with a retryable 5xx.
        """
        self.authenticate(provided_secret)
        if self.is_probe(payload):
            return WebhookResult(stage=WebhookStage.AUTHENTICATED, probe=True)
        if self.store is None:
            raise WebhookRejected(500, "store_not_configured", WebhookStage.AUTHENTICATED)

        event = self.parse(payload)
        user_id = self.directory.find_user_id(event.email)

        _, action = self.store.upsert(
            event.email,
            event.order_id,
            {
                "status": event.status,
                "user_id": user_id,
                "product_id": event.product_id,
                "expires_at": event.expires_at,
                "raw_event": ddb_safe(event.payload),
                "last_event_at": now_ts(),
            },
        )
        return WebhookResult(
            stage=WebhookStage.APPLIED,
            email=event.email,
            order_id=event.order_id,
            status=event.status,
            action=action,
        )


@lru_cache(maxsize=1)
def get_webhook_ingestor() -> WebhookIngestor:
    return WebhookIngestor(S, get_subscription_store(), get_identity_directory())
