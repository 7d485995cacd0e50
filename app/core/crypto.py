from __future__ import annotations

import hashlib
import hmac
import secrets


def sha256_str(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def secrets_equal(provided: str, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def new_link_token() -> str:
    return secrets.token_urlsafe(32)
