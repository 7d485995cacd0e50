from __future__ import annotations

import json
import uuid
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from app.core.normalize import normalize_email
from app.core.settings import S, Settings
from app.core.tables import T
from app.core.time import now_ts
from app.metrics import record_binding
from app.services.audit import audit_event

ACTIVE = "active"
PENDING = "pending"
CANCELED = "canceled"
EXPIRED = "expired"
REFUNDED = "refunded"
CHARGEBACK = "chargeback"

NO_ORDER_PREFIX = "NOORDER"


def _pk(email: str) -> str:
    return f"EMAIL#{email}"


def _order_sk(order_id: str) -> str:
    return f"ORDER#{order_id}"


def _key(record: Dict[str, Any]) -> Dict[str, str]:
    return {"pk": record["pk"], "sk": record["sk"]}


def is_conflict(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def ddb_safe(value: Any) -> Any:
    # DynamoDB rejects floats; round-trip through JSON with Decimal numbers.
    return json.loads(json.dumps(value, default=str), parse_float=Decimal)


class SubscriptionStore:
    """Ledger of paid relationships, one item per (email, order id).

    Items live under ``pk = EMAIL#<email>``; records with an order id use
    ``sk = ORDER#<order_id>`` so the key itself enforces uniqueness, records
    without one use ``NOORDER`` sort keys. Bound user ids are indexed by a
    sparse GSI.
    """

    def __init__(self, table: Any, settings: Settings, *, clock: Callable[[], int] = now_ts) -> None:
        self.table = table
        self.settings = settings
        self.clock = clock

    # reads

    def get_by_order(self, email: str, order_id: str) -> Optional[Dict[str, Any]]:
        email = normalize_email(email)
        if not email or not order_id:
            return None
        return self.table.get_item(Key={"pk": _pk(email), "sk": _order_sk(order_id)}).get("Item")

    def list_for_email(self, email: str) -> List[Dict[str, Any]]:
        email = normalize_email(email)
        if not email:
            return []
        resp = self.table.query(
            KeyConditionExpression="pk = :pk",
            ExpressionAttributeValues={":pk": _pk(email)},
        )
        return resp.get("Items", [])

    def latest_without_order(self, email: str) -> Optional[Dict[str, Any]]:
        email = normalize_email(email)
        if not email:
            return None
        resp = self.table.query(
            KeyConditionExpression="pk = :pk AND begins_with(sk, :p)",
            ExpressionAttributeValues={":pk": _pk(email), ":p": NO_ORDER_PREFIX},
        )
        items = resp.get("Items", [])
        if not items:
            return None
        return max(items, key=lambda it: int(it.get("last_event_at") or 0))

    def record_is_active(self, record: Optional[Dict[str, Any]]) -> bool:
        if not record or record.get("status") != ACTIVE:
            return False
        if not self.settings.access_enforce_expiry:
            return True
        expires_at = record.get("expires_at")
        return expires_at is None or int(expires_at) > self.clock()

    def find_active_by_user_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        user_id = (user_id or "").strip()
        if not user_id:
            return None
        resp = self.table.query(
            IndexName=self.settings.subscriptions_user_index,
            KeyConditionExpression="user_id = :uid",
            ExpressionAttributeValues={":uid": user_id},
        )
        for item in resp.get("Items", []):
            if self.record_is_active(item):
                return item
        return None

    def find_active_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        for item in self.list_for_email(email):
            if self.record_is_active(item):
                return item
        return None

    def has_active(self, email: str, user_id: Optional[str] = None, *, bind: bool = False) -> bool:
        if user_id and self.find_active_by_user_id(user_id):
            return True
        record = self.find_active_by_email(email)
        if not record:
            return False
        if bind and user_id and not record.get("user_id"):
            self.bind_user_id(record, user_id)
        return True

    # writes

    def bind_user_id(self, record: Dict[str, Any], user_id: str) -> bool:
        """Set user_id once (null -> value). Never raises, never overwrites."""
        try:
            self.table.update_item(
                Key=_key(record),
                UpdateExpression="SET #uid = :uid, #u = :t",
                ConditionExpression="attribute_not_exists(#uid)",
                ExpressionAttributeNames={"#uid": "user_id", "#u": "updated_at"},
                ExpressionAttributeValues={":uid": user_id, ":t": self.clock()},
            )
        except ClientError as exc:
            outcome = "already_bound" if is_conflict(exc) else "failed"
            record_binding(outcome)
            audit_event("subscription_bind", record.get("email", ""), outcome="warning", result=outcome, record_id=record.get("id"))
            return False
        except Exception as exc:
            record_binding("failed")
            audit_event("subscription_bind", record.get("email", ""), outcome="warning", result="failed", error=repr(exc))
            return False
        record["user_id"] = user_id
        record_binding("bound")
        audit_event("subscription_bind", record.get("email", ""), outcome="success", record_id=record.get("id"))
        return True

    def upsert(self, email: str, order_id: Optional[str], fields: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
        """Idempotent merge of one provider event.

        With an order id the (email, order id) key is updated in place or
        inserted; a conditional-insert conflict means a concurrent delivery
        won the race, so the row is re-read and updated instead. Without an
        order id the latest NOORDER row for the email evolves in place.
        Returns the resulting record and which path was taken.
        """
        email = normalize_email(email)
        if not email:
            raise ValueError("upsert requires a normalized email")
        fields = {k: v for k, v in dict(fields).items() if v is not None}
        user_id = fields.pop("user_id", None)

        if order_id:
            existing = self.get_by_order(email, order_id)
            key = {"pk": _pk(email), "sk": _order_sk(order_id)}
        else:
            existing = self.latest_without_order(email)
            key = {"pk": _pk(email), "sk": NO_ORDER_PREFIX}

        if existing:
            return self._update(_key(existing), fields, user_id=user_id), "updated"

        ts = self.clock()
        item: Dict[str, Any] = {
            **key,
            "id": uuid.uuid4().hex,
            "email": email,
            "created_at": ts,
            "updated_at": ts,
            **fields,
        }
        if order_id:
            item["order_id"] = order_id
        if user_id:
            item["user_id"] = user_id
        if item.get("status") == CANCELED:
            item["canceled_at"] = ts
        try:
            self.table.put_item(Item=item, ConditionExpression="attribute_not_exists(pk)")
            return item, "inserted"
        except ClientError as exc:
            if not is_conflict(exc):
                raise
            existing = self.get_by_order(email, order_id) if order_id else self.latest_without_order(email)
            if not existing:
                raise
        return self._update(_key(existing), fields, user_id=user_id), "updated_after_conflict"

    def _update(self, key: Dict[str, str], fields: Dict[str, Any], *, user_id: Optional[str]) -> Dict[str, Any]:
        ts = self.clock()
        names: Dict[str, str] = {"#u": "updated_at"}
        values: Dict[str, Any] = {":t": ts}
        sets = ["#u = :t"]
        i = 0
        for k, v in fields.items():
            i += 1
            names[f"#k{i}"] = k
            values[f":v{i}"] = v
            sets.append(f"#k{i} = :v{i}")
        if user_id:
            names["#uid"] = "user_id"
            values[":uid"] = user_id
            sets.append("#uid = if_not_exists(#uid, :uid)")
        if fields.get("status") == CANCELED:
            names["#ca"] = "canceled_at"
            sets.append("#ca = if_not_exists(#ca, :t)")
        resp = self.table.update_item(
            Key=key,
            UpdateExpression="SET " + ", ".join(sets),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return resp.get("Attributes") or {**key, **fields}


@lru_cache(maxsize=1)
def get_subscription_store() -> Optional[SubscriptionStore]:
    if not S.subscriptions_table_name:
        return None
    return SubscriptionStore(T.subscriptions, S)
