from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    subscriptions: Any
    sessions: Any

T = Tables(
    subscriptions=ddb.Table(S.subscriptions_table_name),
    sessions=ddb.Table(S.sessions_table_name),
)
