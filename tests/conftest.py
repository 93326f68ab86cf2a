"""Shared fixtures: an in-memory Supabase query builder and Stripe payloads.

The fake supports the subset of the PostgREST builder used by
DatabaseClient (insert/update/select, eq, is_, limit, execute) and the
``property_subscriptions(...)`` embed on the subscriptions table.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import threading
import time
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from billing_webhook.config import Settings
from billing_webhook.services.billing_client import BillingClient
from billing_webhook.services.db_client import DatabaseClient
from billing_webhook.services.dispatcher import EventDispatcher
from billing_webhook.services.events import SubscriptionDetail
from billing_webhook.services.tiers import TierMapper

WEBHOOK_SECRET = "whsec_test_secret"
PRICE_BASIC = "price_basic"
PRICE_PREMIUM = "price_premium"
PRICE_MULTILINGUAL = "price_multilingual"
PRICE_CONNECTED = "price_connected"

WRITE_OPS = ("insert", "update")


class FakeQuery:
    def __init__(self, db: FakeSupabase, table: str) -> None:
        self._db = db
        self._table = table
        self._op: str | None = None
        self._payload: dict[str, Any] | None = None
        self._columns = "*"
        self._filters: list[tuple[str, Any]] = []
        self._limit: int | None = None

    def insert(self, row: dict[str, Any]) -> FakeQuery:
        self._op, self._payload = "insert", dict(row)
        return self

    def update(self, fields: dict[str, Any]) -> FakeQuery:
        self._op, self._payload = "update", dict(fields)
        return self

    def select(self, columns: str = "*") -> FakeQuery:
        self._op, self._columns = "select", columns
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        self._filters.append((column, value))
        return self

    def is_(self, column: str, value: Any) -> FakeQuery:
        self._filters.append((column, None if value in ("null", None) else value))
        return self

    def limit(self, n: int) -> FakeQuery:
        self._limit = n
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> SimpleNamespace:
        self._db.thread_ids.append(threading.get_ident())
        error = self._db.failures.get((self._table, self._op))
        if error is not None:
            raise error
        self._db.calls.append((self._table, self._op, self._payload, list(self._filters)))

        rows = self._db.tables.setdefault(self._table, [])
        if self._op == "insert":
            self._db.counter += 1
            row = {"id": f"{self._table}_{self._db.counter}", **self._payload}
            rows.append(row)
            return SimpleNamespace(data=[dict(row)])

        matching = [row for row in rows if self._matches(row)]
        if self._op == "update":
            for row in matching:
                row.update(self._payload)
            return SimpleNamespace(data=[dict(row) for row in matching])

        result = []
        for row in matching[: self._limit]:
            out = dict(row)
            if "property_subscriptions(" in self._columns:
                out["property_subscriptions"] = [
                    {"property_id": link["property_id"], "is_active": link["is_active"]}
                    for link in self._db.tables.get("property_subscriptions", [])
                    if link["subscription_id"] == row["id"]
                ]
            result.append(out)
        return SimpleNamespace(data=result)


class FakeSupabase:
    """In-memory stand-in for the Supabase client."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, Any, list]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.thread_ids: list[int] = []
        self.counter = 0

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, op: str, error: Exception | None = None) -> None:
        self.failures[(table, op)] = error or RuntimeError(f"{op} on {table} failed")

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    @property
    def writes(self) -> list[tuple[str, str, Any, list]]:
        return [call for call in self.calls if call[1] in WRITE_OPS]


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def db_client(fake_supabase: FakeSupabase) -> DatabaseClient:
    return DatabaseClient(client=fake_supabase)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        supabase_url="https://example.supabase.co",
        supabase_service_role_key="service-role",
        stripe_price_basic=PRICE_BASIC,
        stripe_price_premium=PRICE_PREMIUM,
        stripe_price_multilingual=PRICE_MULTILINGUAL,
        stripe_price_connected=PRICE_CONNECTED,
    )


@pytest.fixture
def tier_mapper(settings: Settings) -> TierMapper:
    return TierMapper.from_settings(settings)


def make_stripe_subscription(
    subscription_id: str = "sub_123",
    price_id: str = PRICE_PREMIUM,
    status: str = "active",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a Stripe subscription object as sent by the API."""
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": "cus_123",
        "status": status,
        "items": {
            "object": "list",
            "data": [
                {
                    "id": "si_123",
                    "object": "subscription_item",
                    "price": {"id": price_id, "object": "price", "product": "prod_123"},
                }
            ],
        },
        "current_period_start": 1_700_000_000,
        "current_period_end": 1_702_592_000,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "ended_at": None,
        "metadata": {"plan": "premium"},
    }
    subscription.update(overrides)
    return subscription


def make_checkout_session(**overrides: Any) -> dict[str, Any]:
    session = {
        "id": "cs_test_123",
        "object": "checkout.session",
        "client_reference_id": None,
        "customer": "cus_123",
        "subscription": "sub_123",
        "metadata": {"user_id": "user_1", "property_id": "prop_1"},
    }
    session.update(overrides)
    return session


def make_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_123") -> dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``stripe-signature`` header for a payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def encode_event(event: dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def billing_client() -> MagicMock:
    """Billing client whose retrieve_subscription returns sub_123 on the premium price."""
    client = MagicMock(spec=BillingClient)
    client.retrieve_subscription = AsyncMock(
        return_value=SubscriptionDetail.from_stripe(make_stripe_subscription())
    )
    return client


@pytest.fixture
def dispatcher(
    db_client: DatabaseClient, billing_client: MagicMock, tier_mapper: TierMapper
) -> EventDispatcher:
    return EventDispatcher(db=db_client, billing=billing_client, tiers=tier_mapper)
