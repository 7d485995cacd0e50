from __future__ import annotations

import re
from typing import Any, Dict, Mapping

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_MASK_MARKERS = ("secret", "password", "token", "key", "authorization", "signature", "sign")


def client_ip_from_request(req) -> str:
    xff = req.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return req.client.host if req.client else "0.0.0.0"


def normalize_email(s: Any) -> str:
    # Never raises; "" is the "no identity" value and matches nothing.
    if not isinstance(s, str):
        return ""
    return s.strip().lower()


def is_valid_email(s: str) -> bool:
    if not s or len(s) > 254:
        return False
    return bool(_EMAIL_RE.match(s))


def should_mask_key(key: str) -> bool:
    k = (key or "").lower()
    return any(m in k for m in _MASK_MARKERS)


def mask_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    v = value.strip()
    if not v:
        return v
    if len(v) <= 8:
        return f"{v[:2]}***"
    return f"{v[:4]}***{v[-3:]}"


def mask_mapping(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: (mask_value(v) if should_mask_key(k) else v) for k, v in (data or {}).items()}
