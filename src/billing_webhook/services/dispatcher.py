"""Event dispatcher applying Stripe subscription events to the database.

Each handled event runs a fixed, single-pass sequence of writes. There is no
transaction around the sequence: when a fatal step fails, earlier writes of
the same event stay in place and Stripe redelivers the event.

Redelivery of ``checkout.session.completed`` inserts another subscriptions
row; rows are not deduplicated on the Stripe subscription id. Out-of-order
``customer.subscription.updated`` deliveries are applied in arrival order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger

from billing_webhook.services.billing_client import BillingClient
from billing_webhook.services.db_client import DatabaseClient
from billing_webhook.services.errors import (
    DatabaseError,
    MissingRequiredDataError,
    MutationFailureError,
)
from billing_webhook.services.events import (
    CheckoutCompleted,
    SubscriptionDeleted,
    SubscriptionDetail,
    SubscriptionUpdated,
    UnhandledEvent,
    WebhookEvent,
    timestamp_to_iso,
)
from billing_webhook.services.property_summary import refresh_property_summary
from billing_webhook.services.tiers import SubscriptionTier, TierMapper

CANCELED = "canceled"


@dataclass
class DispatchResult:
    """Outcome of dispatching one event."""

    event_type: str
    action: str  # 'created', 'updated', 'canceled', 'not_found', 'ignored'
    subscription_id: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventDispatcher:
    """Route typed webhook events to their mutation sequences."""

    def __init__(self, db: DatabaseClient, billing: BillingClient, tiers: TierMapper) -> None:
        self.db = db
        self.billing = billing
        self.tiers = tiers
        self._handlers = {
            CheckoutCompleted: self._handle_checkout_completed,
            SubscriptionUpdated: self._handle_subscription_updated,
            SubscriptionDeleted: self._handle_subscription_deleted,
            UnhandledEvent: self._handle_unhandled,
        }

    async def dispatch(self, event: WebhookEvent) -> DispatchResult:
        """Apply an event.

        Raises:
            MissingRequiredDataError: If a checkout session lacks mandatory fields.
            MutationFailureError: If a write later steps depend on fails.
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"No handler for event {type(event).__name__}")
        logger.info("Dispatching {} (ID: {})", event.type, event.event_id)
        return await handler(event)

    def _subscription_fields(self, detail: SubscriptionDetail, tier: SubscriptionTier) -> dict:
        return {
            "stripe_product_id": detail.product_id,
            "stripe_price_id": detail.price_id,
            "status": detail.status,
            "tier": tier.value,
            "current_period_start": timestamp_to_iso(detail.current_period_start),
            "current_period_end": timestamp_to_iso(detail.current_period_end),
            "cancel_at_period_end": detail.cancel_at_period_end,
            "metadata": detail.metadata,
        }

    async def _handle_checkout_completed(self, event: CheckoutCompleted) -> DispatchResult:
        missing = event.missing_fields()
        if missing:
            logger.error(
                "Checkout session {} is missing required data: {}",
                event.session_id,
                ", ".join(missing),
            )
            raise MissingRequiredDataError("Missing required data in session.", missing=missing)

        try:
            detail = await self.billing.retrieve_subscription(event.subscription_id)
        except Exception as e:
            raise MutationFailureError(
                f"Could not retrieve subscription {event.subscription_id}: {e}", cause=e
            ) from e
        tier = self.tiers.tier_for_price(detail.price_id)

        # First write wins; a profile that already has a customer id keeps it
        try:
            await self.db.set_customer_id_if_unset(event.user_id, event.customer_id)
        except DatabaseError as e:
            logger.warning("Continuing without profile customer id for {}: {}", event.user_id, e)

        row = {
            "user_id": event.user_id,
            "stripe_customer_id": event.customer_id,
            "stripe_subscription_id": event.subscription_id,
            **self._subscription_fields(detail, tier),
        }
        try:
            record = await self.db.insert_subscription(row)
            await self.db.insert_property_link(event.property_id, record.id)
        except DatabaseError as e:
            raise MutationFailureError(str(e), cause=e) from e

        await refresh_property_summary(
            self.db, event.property_id, tier.value, detail.status, detail.renewal_date
        )
        logger.info(
            "Subscription {} created and linked for property {}",
            event.subscription_id,
            event.property_id,
        )
        return DispatchResult(event.type, "created", event.subscription_id)

    async def _handle_subscription_updated(self, event: SubscriptionUpdated) -> DispatchResult:
        detail = event.subscription
        tier = self.tiers.tier_for_price(detail.price_id)

        fields = {
            **self._subscription_fields(detail, tier),
            "canceled_at": timestamp_to_iso(detail.canceled_at),
            "ended_at": timestamp_to_iso(detail.ended_at),
            "updated_at": _utcnow().isoformat(),
        }
        try:
            await self.db.update_subscription(detail.id, fields)
        except DatabaseError as e:
            raise MutationFailureError(str(e), cause=e) from e

        property_id = None
        try:
            record = await self.db.find_subscription(detail.id)
            property_id = record.property_id if record else None
        except DatabaseError as e:
            logger.error("Property lookup for subscription {} failed: {}", detail.id, e)

        if property_id:
            await refresh_property_summary(
                self.db, property_id, tier.value, detail.status, detail.renewal_date
            )
        else:
            logger.warning("Could not find property for subscription {}", detail.id)

        logger.info("Subscription {} updated to status: {}", detail.id, detail.status)
        return DispatchResult(event.type, "updated", detail.id)

    async def _handle_subscription_deleted(self, event: SubscriptionDeleted) -> DispatchResult:
        detail = event.subscription

        try:
            record = await self.db.find_subscription(detail.id)
        except DatabaseError as e:
            logger.error("Lookup of subscription {} for deletion failed: {}", detail.id, e)
            record = None

        if record is None:
            logger.warning("Subscription {} not found for deletion", detail.id)
            return DispatchResult(event.type, "not_found", detail.id)

        now = _utcnow()
        ended_at = timestamp_to_iso(detail.ended_at) or now.isoformat()
        try:
            await self.db.mark_subscription_canceled(detail.id, ended_at, now.isoformat())
        except DatabaseError as e:
            raise MutationFailureError(str(e), cause=e) from e

        try:
            await self.db.deactivate_property_links(record.id, now.isoformat())
        except DatabaseError as e:
            logger.warning("Property links of subscription {} left active: {}", detail.id, e)

        property_id = record.property_id
        if property_id:
            await refresh_property_summary(
                self.db,
                property_id,
                record.tier or SubscriptionTier.FREE.value,
                CANCELED,
                now,
            )
        else:
            logger.warning("Could not find property for deleted subscription {}", detail.id)

        logger.info("Subscription {} canceled", detail.id)
        return DispatchResult(event.type, "canceled", detail.id)

    async def _handle_unhandled(self, event: UnhandledEvent) -> DispatchResult:
        logger.info("Unhandled event type {}", event.type)
        return DispatchResult(event.type, "ignored", event.object_id)
