"""Database client for Supabase integration.

This module wraps the Supabase tables touched by the webhook:
- profiles: owner of the Stripe customer id
- subscriptions: normalized subscription state, one row per checkout
- property_subscriptions: links between properties and subscriptions
- properties: parent records carrying the denormalized summary
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from loguru import logger
from starlette.concurrency import run_in_threadpool
from supabase import create_client

from billing_webhook.services.errors import DatabaseError

SUBSCRIPTIONS_TABLE = "subscriptions"
PROPERTY_LINKS_TABLE = "property_subscriptions"
PROPERTIES_TABLE = "properties"
PROFILES_TABLE = "profiles"


class DatabaseClientProtocol(Protocol):
    """Protocol for the Supabase client to enable mocking/testing."""

    def table(self, table_name: str) -> Any:
        """Get a table reference."""
        ...


@dataclass
class PropertyLink:
    """A link between a property and a subscription."""

    property_id: str
    subscription_id: str | None = None
    is_active: bool = True
    unlinked_at: str | None = None
    id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PropertyLink:
        """Create PropertyLink from database row."""
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            property_id=str(row["property_id"]),
            subscription_id=str(row["subscription_id"])
            if row.get("subscription_id") is not None
            else None,
            is_active=row.get("is_active", True),
            unlinked_at=row.get("unlinked_at"),
        )


@dataclass
class SubscriptionRecord:
    """A row of the subscriptions table, optionally with its property links."""

    id: str
    stripe_subscription_id: str | None = None
    user_id: str | None = None
    stripe_customer_id: str | None = None
    status: str | None = None
    tier: str | None = None
    links: list[PropertyLink] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SubscriptionRecord:
        """Create SubscriptionRecord from database row.

        Embedded ``property_subscriptions`` rows are parsed into links when
        the select included them.
        """
        links = [
            PropertyLink.from_row({"subscription_id": row["id"], **link})
            for link in row.get(PROPERTY_LINKS_TABLE) or []
        ]
        return cls(
            id=str(row["id"]),
            stripe_subscription_id=row.get("stripe_subscription_id"),
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            stripe_customer_id=row.get("stripe_customer_id"),
            status=row.get("status"),
            tier=row.get("tier"),
            links=links,
        )

    @property
    def property_id(self) -> str | None:
        """Property of the active link, else of the first link."""
        for link in self.links:
            if link.is_active:
                return link.property_id
        return self.links[0].property_id if self.links else None


class DatabaseClient:
    """Database client for the subscription tables.

    Every method logs failures with context and raises DatabaseError;
    callers decide whether a failure is fatal for the event.
    """

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        client: DatabaseClientProtocol | None = None,
    ) -> None:
        """Initialize database client.

        Args:
            url: Supabase URL.
            key: Supabase service role key.
            client: Optional pre-configured client (for testing/mocking).

        Raises:
            DatabaseError: If credentials are missing.
        """
        self._client: DatabaseClientProtocol

        if client is not None:
            self._client = client
            logger.info("DatabaseClient initialized with custom client")
            return

        if not url or not key:
            raise DatabaseError(
                "Supabase URL and service role key are required. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables."
            )

        self._client = create_client(url, key)
        logger.info("DatabaseClient initialized with Supabase")

    async def _execute(self, query: Any) -> Any:
        """Run a blocking PostgREST request off the event loop."""
        return await run_in_threadpool(query.execute)

    async def set_customer_id_if_unset(self, user_id: str, customer_id: str) -> None:
        """Store the Stripe customer id on a profile unless one is already set.

        Args:
            user_id: Profile id.
            customer_id: Stripe customer id (``cus_...``).
        """
        try:
            await self._execute(
                self._client.table(PROFILES_TABLE)
                .update({"stripe_customer_id": customer_id})
                .eq("id", user_id)
                .is_("stripe_customer_id", "null")
            )
        except Exception as e:
            logger.error("Failed to set customer id on profile {}: {}", user_id, e)
            raise DatabaseError(f"Failed to update profile {user_id}", cause=e) from e

    async def insert_subscription(self, row: dict[str, Any]) -> SubscriptionRecord:
        """Insert a subscription row.

        Args:
            row: Column values.

        Returns:
            The created record, including its generated id.
        """
        try:
            response = await self._execute(self._client.table(SUBSCRIPTIONS_TABLE).insert(row))
        except Exception as e:
            logger.error(
                "Failed to insert subscription {}: {}", row.get("stripe_subscription_id"), e
            )
            raise DatabaseError("Failed to insert subscription", cause=e) from e

        if not response.data:
            logger.error(
                "Insert of subscription {} returned no row", row.get("stripe_subscription_id")
            )
            raise DatabaseError("Failed to create new subscription record")
        return SubscriptionRecord.from_row(response.data[0])

    async def insert_property_link(self, property_id: str, subscription_id: str) -> PropertyLink:
        """Link a subscription to a property as the active subscription.

        Args:
            property_id: Property id.
            subscription_id: Generated id of the subscriptions row.

        Returns:
            The created link.
        """
        row = {"property_id": property_id, "subscription_id": subscription_id, "is_active": True}
        try:
            response = await self._execute(self._client.table(PROPERTY_LINKS_TABLE).insert(row))
        except Exception as e:
            logger.error(
                "Failed to link subscription {} to property {}: {}",
                subscription_id,
                property_id,
                e,
            )
            raise DatabaseError("Failed to insert property subscription", cause=e) from e
        return PropertyLink.from_row(response.data[0] if response.data else row)

    async def update_subscription(self, stripe_subscription_id: str, fields: dict[str, Any]) -> None:
        """Update subscriptions rows matching a Stripe subscription id."""
        try:
            await self._execute(
                self._client.table(SUBSCRIPTIONS_TABLE)
                .update(fields)
                .eq("stripe_subscription_id", stripe_subscription_id)
            )
        except Exception as e:
            logger.error("Failed to update subscription {}: {}", stripe_subscription_id, e)
            raise DatabaseError(
                f"Failed to update subscription {stripe_subscription_id}", cause=e
            ) from e

    async def mark_subscription_canceled(
        self, stripe_subscription_id: str, ended_at: str, updated_at: str
    ) -> None:
        """Move a subscription to the canceled status."""
        await self.update_subscription(
            stripe_subscription_id,
            {"status": "canceled", "ended_at": ended_at, "updated_at": updated_at},
        )

    async def find_subscription(self, stripe_subscription_id: str) -> SubscriptionRecord | None:
        """Get a subscription together with its property links.

        Args:
            stripe_subscription_id: Stripe subscription id.

        Returns:
            SubscriptionRecord or None if not found.
        """
        try:
            response = await self._execute(
                self._client.table(SUBSCRIPTIONS_TABLE)
                .select(
                    "id, stripe_subscription_id, user_id, status, tier, "
                    f"{PROPERTY_LINKS_TABLE}(property_id, is_active)"
                )
                .eq("stripe_subscription_id", stripe_subscription_id)
                .limit(1)
            )
        except Exception as e:
            logger.error("Failed to fetch subscription {}: {}", stripe_subscription_id, e)
            raise DatabaseError(
                f"Failed to fetch subscription {stripe_subscription_id}", cause=e
            ) from e

        if not response.data:
            return None
        return SubscriptionRecord.from_row(response.data[0])

    async def deactivate_property_links(self, subscription_id: str, unlinked_at: str) -> None:
        """Mark every property link of a subscription inactive."""
        try:
            await self._execute(
                self._client.table(PROPERTY_LINKS_TABLE)
                .update({"is_active": False, "unlinked_at": unlinked_at})
                .eq("subscription_id", subscription_id)
            )
        except Exception as e:
            logger.error("Failed to deactivate property links for {}: {}", subscription_id, e)
            raise DatabaseError(
                f"Failed to deactivate property links for {subscription_id}", cause=e
            ) from e

    async def update_property_summary(self, property_id: str, summary: dict[str, Any]) -> None:
        """Overwrite the denormalized ``subscription`` column of a property."""
        try:
            await self._execute(
                self._client.table(PROPERTIES_TABLE)
                .update({"subscription": summary})
                .eq("id", property_id)
            )
        except Exception as e:
            logger.error("Failed to update subscription summary of property {}: {}", property_id, e)
            raise DatabaseError(f"Failed to update property {property_id}", cause=e) from e
