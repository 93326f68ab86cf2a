"""
Webhook endpoint for Stripe subscription events.

The signature is checked against the raw request body before anything is
parsed. The status code is the only signal Stripe gets back:
400 means the delivery is rejected, 500 asks for redelivery.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger

from billing_webhook.services.dispatcher import EventDispatcher
from billing_webhook.services.errors import InvalidSignatureError, MissingRequiredDataError
from billing_webhook.services.events import parse_event
from billing_webhook.services.signature import SignatureVerifier

router = APIRouter()

HEALTH_MESSAGE = "Stripe Webhook Service is running."


# ============================================
# DEPENDENCIES
# ============================================

def get_verifier(request: Request) -> SignatureVerifier:
    """Dependency returning the verifier built at startup."""
    return request.app.state.verifier


def get_dispatcher(request: Request) -> EventDispatcher:
    """Dependency returning the dispatcher built at startup."""
    return request.app.state.dispatcher


# ============================================
# ROUTES
# ============================================

@router.get("/", response_class=PlainTextResponse)
async def health() -> PlainTextResponse:
    """Liveness check."""
    return PlainTextResponse(HEALTH_MESSAGE)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="stripe-signature"),
    verifier: SignatureVerifier = Depends(get_verifier),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    Handle Stripe webhook events.

    Events handled:
    - checkout.session.completed: Create subscription and property link
    - customer.subscription.updated: Sync subscription status and period
    - customer.subscription.deleted: Mark subscription canceled, unlink property
    """
    payload = await request.body()
    logger.debug(
        "POST /webhook received at {} ({} bytes, signature header {})",
        datetime.now(timezone.utc).isoformat(),
        len(payload),
        "present" if stripe_signature else "missing",
    )

    if not verifier.configured:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return PlainTextResponse("Webhook secret not configured", status_code=500)

    try:
        stripe_event = verifier.verify(payload, stripe_signature)
    except InvalidSignatureError as e:
        return PlainTextResponse(f"Webhook Error: {e}", status_code=400)

    event_type = stripe_event.get("type")
    logger.info("Received Stripe webhook: {} (ID: {})", event_type, stripe_event.get("id"))

    try:
        result = await dispatcher.dispatch(parse_event(stripe_event))
    except MissingRequiredDataError as e:
        return PlainTextResponse(str(e), status_code=400)
    except Exception as e:
        logger.opt(exception=e).error("Error processing webhook event {}: {}", event_type, e)
        return PlainTextResponse(f"Webhook processing error: {e}", status_code=500)

    logger.info("Processed {} ({})", result.event_type, result.action)
    return JSONResponse({"received": True})
