"""Stripe API client used to fetch subscription details."""

from __future__ import annotations

import stripe
from loguru import logger
from starlette.concurrency import run_in_threadpool

from billing_webhook.services.events import SubscriptionDetail


class BillingClient:
    """Thin wrapper over the Stripe SDK.

    The API key is passed per request so the module-level ``stripe.api_key``
    is never touched.
    """

    def __init__(self, api_key: str | None) -> None:
        if not api_key:
            logger.warning("STRIPE_SECRET_KEY not set; subscription lookups will fail")
        self._api_key = api_key

    async def retrieve_subscription(self, subscription_id: str) -> SubscriptionDetail:
        """Fetch a subscription from Stripe.

        Args:
            subscription_id: Stripe subscription id (``sub_...``).

        Returns:
            Parsed SubscriptionDetail.

        Raises:
            stripe.error.StripeError: If the request fails.
        """
        try:
            subscription = await run_in_threadpool(
                stripe.Subscription.retrieve, subscription_id, api_key=self._api_key
            )
        except stripe.error.StripeError as e:
            logger.error("Failed to retrieve Stripe subscription {}: {}", subscription_id, e)
            raise
        return SubscriptionDetail.from_stripe(subscription)
