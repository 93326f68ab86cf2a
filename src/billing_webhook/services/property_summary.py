"""Denormalized subscription summary stored on the properties table.

The summary is a convenience copy for fast reads. The subscriptions and
property_subscriptions tables stay authoritative, so writes here are best
effort and never fail the webhook.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from billing_webhook.services.db_client import DatabaseClient


@dataclass
class PropertySummary:
    tier: str
    status: str | None
    renewal_date: datetime | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "status": self.status,
            "renewalDate": self.renewal_date.isoformat() if self.renewal_date else None,
        }


async def refresh_property_summary(
    db: DatabaseClient,
    property_id: str | None,
    tier: str,
    status: str | None,
    renewal_date: datetime | None,
) -> bool:
    """Overwrite the subscription summary of a property.

    Args:
        db: Database client.
        property_id: Property to update; a missing id is skipped.
        tier: Internal tier label.
        status: Stripe subscription status.
        renewal_date: End of the current billing period.

    Returns:
        True if the summary was written, False otherwise.
    """
    if not property_id:
        logger.warning("No property id given, skipping subscription summary update")
        return False

    summary = PropertySummary(tier=tier, status=status, renewal_date=renewal_date)
    try:
        await db.update_property_summary(property_id, summary.to_json())
    except Exception:
        logger.exception("Could not refresh subscription summary of property {}", property_id)
        return False

    logger.debug("Refreshed subscription summary of property {}: {}", property_id, summary)
    return True
