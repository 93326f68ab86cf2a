"""Mapping from Stripe price ids to internal subscription tiers."""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from loguru import logger

from billing_webhook.config import Settings


class SubscriptionTier(str, Enum):
    """Internal subscription plan labels."""

    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    CONNECTED = "connected"


class TierMapper:
    """Resolve a price id to a tier by exact match.

    Several price ids may share a tier. Unknown or missing price ids resolve
    to the default tier with a warning so that processing carries on.
    """

    def __init__(
        self,
        price_tiers: Mapping[str, SubscriptionTier],
        default: SubscriptionTier = SubscriptionTier.FREE,
    ) -> None:
        self._price_tiers = {price: tier for price, tier in price_tiers.items() if price}
        self.default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> TierMapper:
        """Build the mapper from the configured reference price ids."""
        references = [
            (settings.stripe_price_basic, SubscriptionTier.BASIC),
            (settings.stripe_price_premium, SubscriptionTier.PREMIUM),
            (settings.stripe_price_multilingual, SubscriptionTier.CONNECTED),
            (settings.stripe_price_connected, SubscriptionTier.CONNECTED),
        ]
        price_tiers: dict[str, SubscriptionTier] = {}
        for price_id, tier in references:
            if price_id:
                price_tiers[price_id] = tier
        if not price_tiers:
            logger.warning("No Stripe reference price ids configured; every price maps to free")
        return cls(price_tiers)

    def tier_for_price(self, price_id: str | None) -> SubscriptionTier:
        """Return the tier for a price id, falling back to the default."""
        if not price_id:
            logger.warning("No Stripe price id given, defaulting to {}", self.default.value)
            return self.default
        tier = self._price_tiers.get(price_id)
        if tier is None:
            logger.warning(
                "Unknown Stripe price id {}, defaulting to {}", price_id, self.default.value
            )
            return self.default
        return tier
