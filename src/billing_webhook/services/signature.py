"""Stripe webhook signature verification."""

from __future__ import annotations

from typing import Any, Mapping

import stripe
from loguru import logger

from billing_webhook.services.errors import InvalidSignatureError


class SignatureVerifier:
    """Verify that a raw payload was signed by Stripe.

    The signature covers the exact transmitted bytes and a timestamp, so the
    payload must be passed in unparsed.
    """

    def __init__(self, secret: str | None, tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE) -> None:
        self._secret = secret
        self.tolerance = tolerance

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature_header: str | None) -> Mapping[str, Any]:
        """Verify the payload and return the decoded event.

        Args:
            payload: Raw request body.
            signature_header: Value of the ``stripe-signature`` header.

        Returns:
            The Stripe event as a mapping.

        Raises:
            InvalidSignatureError: If the header is missing or malformed, the
                signature does not match, the timestamp is outside the
                tolerance window, or the payload is not valid JSON.
        """
        if not self._secret:
            raise InvalidSignatureError("Webhook secret not configured")
        if not signature_header:
            raise InvalidSignatureError("Missing stripe-signature header")

        try:
            return stripe.Webhook.construct_event(
                payload, signature_header, self._secret, tolerance=self.tolerance
            )
        except stripe.error.SignatureVerificationError as e:
            logger.warning("Stripe signature verification failed: {}", e)
            raise InvalidSignatureError(str(e), cause=e) from e
        except ValueError as e:
            logger.warning("Invalid Stripe webhook payload: {}", e)
            raise InvalidSignatureError(f"Invalid payload: {e}", cause=e) from e
