from __future__ import annotations

import json
from typing import Any, Dict

from app.core.normalize import client_ip_from_request, mask_mapping
from app.core.settings import S
from app.core.time import now_ts


def _safe(v: Any) -> Any:
    if v is None or isinstance(v, (int, float, bool, str)):
        return v
    if isinstance(v, dict):
        return {str(k): _safe(x) for k, x in v.items()}
    if isinstance(v, (list, tuple, set)):
        return [_safe(x) for x in v]
    return str(v)[:512]


def audit_event(event: str, identity: str, request=None, **fields: Any) -> None:
    """Write one compact JSON audit line to stdout.

    Keys that look like credentials are masked before anything is printed.
    """
    if not S.audit_log_enabled:
        return
    payload: Dict[str, Any] = {
        "event": event,
        "identity": identity or "",
        "ts": now_ts(),
        "outcome": "info",
        **mask_mapping(fields),
    }
    if request is not None:
        payload["ip"] = client_ip_from_request(request)
        payload["user_agent"] = (request.headers.get("user-agent", "")[:256])
    try:
        print(json.dumps(_safe(payload), separators=(",", ":"), sort_keys=True))
    except Exception:
        pass
