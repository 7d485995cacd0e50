from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False", "")


@dataclass(frozen=True)
class Settings:
    # Runtime
    app_env: str = os.environ.get("APP_ENV", "production").strip().lower()

    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")

    # Cognito (identity provider lookups + optional bearer tokens)
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "id")

    # DynamoDB tables
    subscriptions_table_name: str = os.environ.get("SUBSCRIPTIONS_TABLE_NAME", "subscriptions")
    subscriptions_user_index: str = os.environ.get("SUBSCRIPTIONS_USER_INDEX", "user_id-index")
    sessions_table_name: str = os.environ.get("SESSIONS_TABLE_NAME", "sessions")

    # TTL
    ddb_ttl_attr: str = os.environ.get("DDB_TTL_ATTR", "ttl_epoch")

    # Access control
    admin_email: str = os.environ.get("ADMIN_EMAIL", "")
    access_enforce_expiry: bool = _flag("ACCESS_ENFORCE_EXPIRY", "0")

    # Payment provider webhook
    webhook_secret: str = os.environ.get("WEBHOOK_SECRET", "")
    webhook_secret_header: str = os.environ.get("WEBHOOK_SECRET_HEADER", "X-Webhook-Secret")

    # Passwordless sign-in
    public_base_url: str = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
    ses_from_email: str = os.environ.get("SES_FROM_EMAIL", "")
    login_link_ttl_seconds: int = int(os.environ.get("LOGIN_LINK_TTL_SECONDS", "900"))

    # Sessions
    ui_session_ttl_seconds: int = int(os.environ.get("UI_SESSION_TTL_SECONDS", str(30 * 24 * 3600)))
    ui_inactivity_seconds: int = int(os.environ.get("UI_INACTIVITY_SECONDS", str(7 * 24 * 3600)))
    session_cookie_name: str = os.environ.get("SESSION_COOKIE_NAME", "session_id")

    audit_log_enabled: bool = _flag("AUDIT_LOG_ENABLED", "1")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")

    @property
    def is_production(self) -> bool:
        return self.app_env in ("prod", "production")


S = Settings()
