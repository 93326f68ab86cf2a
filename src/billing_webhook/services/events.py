"""Typed Stripe webhook events.

Only three event types change state; every other type is parsed into
``UnhandledEvent`` and acknowledged without mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Union

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def _object_id(value: Any) -> str | None:
    """Return the id of a Stripe reference that may be expanded."""
    if isinstance(value, Mapping):
        value = value.get("id")
    return value or None


def timestamp_to_iso(value: int | None) -> str | None:
    """Convert a Unix timestamp in seconds to an ISO-8601 UTC string."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


@dataclass
class SubscriptionDetail:
    """The subset of a Stripe subscription object stored in the database."""

    id: str
    status: str | None
    price_id: str | None = None
    product_id: str | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    canceled_at: int | None = None
    ended_at: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Mapping[str, Any]) -> SubscriptionDetail:
        """Create SubscriptionDetail from a Stripe subscription object."""
        items = (obj.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}

        # Newer API versions carry the billing period on the item only
        period_start = obj.get("current_period_start")
        if period_start is None:
            period_start = first_item.get("current_period_start")
        period_end = obj.get("current_period_end")
        if period_end is None:
            period_end = first_item.get("current_period_end")

        return cls(
            id=obj["id"],
            status=obj.get("status"),
            price_id=price.get("id"),
            product_id=_object_id(price.get("product")),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            canceled_at=obj.get("canceled_at"),
            ended_at=obj.get("ended_at"),
            metadata=dict(obj.get("metadata") or {}),
        )

    @property
    def renewal_date(self) -> datetime | None:
        if self.current_period_end is None:
            return None
        return datetime.fromtimestamp(self.current_period_end, tz=timezone.utc)


@dataclass
class CheckoutCompleted:
    """A finished checkout session that started a subscription."""

    event_id: str | None
    session_id: str | None
    user_id: str | None
    property_id: str | None
    customer_id: str | None
    subscription_id: str | None

    type = CHECKOUT_SESSION_COMPLETED

    @classmethod
    def from_stripe(cls, event_id: str | None, session: Mapping[str, Any]) -> CheckoutCompleted:
        metadata = session.get("metadata") or {}
        return cls(
            event_id=event_id,
            session_id=session.get("id"),
            user_id=metadata.get("user_id") or session.get("client_reference_id"),
            property_id=metadata.get("property_id"),
            customer_id=_object_id(session.get("customer")),
            subscription_id=_object_id(session.get("subscription")),
        )

    def missing_fields(self) -> list[str]:
        """Names of the mandatory fields that are absent."""
        required = {
            "user_id": self.user_id,
            "property_id": self.property_id,
            "customer": self.customer_id,
            "subscription": self.subscription_id,
        }
        return [name for name, value in required.items() if not value]


@dataclass
class SubscriptionUpdated:
    event_id: str | None
    subscription: SubscriptionDetail

    type = SUBSCRIPTION_UPDATED


@dataclass
class SubscriptionDeleted:
    event_id: str | None
    subscription: SubscriptionDetail

    type = SUBSCRIPTION_DELETED


@dataclass
class UnhandledEvent:
    """Any event type this service does not act on."""

    event_id: str | None
    type: str
    object_id: str | None = None


WebhookEvent = Union[CheckoutCompleted, SubscriptionUpdated, SubscriptionDeleted, UnhandledEvent]


def _parse_checkout(event_id: str | None, obj: Mapping[str, Any]) -> WebhookEvent:
    return CheckoutCompleted.from_stripe(event_id, obj)


def _parse_updated(event_id: str | None, obj: Mapping[str, Any]) -> WebhookEvent:
    return SubscriptionUpdated(event_id=event_id, subscription=SubscriptionDetail.from_stripe(obj))


def _parse_deleted(event_id: str | None, obj: Mapping[str, Any]) -> WebhookEvent:
    return SubscriptionDeleted(event_id=event_id, subscription=SubscriptionDetail.from_stripe(obj))


# Map of Stripe event types to parsers
EVENT_TYPES = {
    CHECKOUT_SESSION_COMPLETED: _parse_checkout,
    SUBSCRIPTION_UPDATED: _parse_updated,
    SUBSCRIPTION_DELETED: _parse_deleted,
}


def parse_event(event: Mapping[str, Any]) -> WebhookEvent:
    """Build a typed event from a verified Stripe event.

    Args:
        event: Event mapping as returned by signature verification.

    Returns:
        One of the handled variants, or ``UnhandledEvent``.
    """
    event_type = event.get("type") or ""
    event_id = event.get("id")
    obj = (event.get("data") or {}).get("object") or {}

    parser = EVENT_TYPES.get(event_type)
    if parser is None:
        return UnhandledEvent(event_id=event_id, type=event_type, object_id=obj.get("id"))
    return parser(event_id, obj)
