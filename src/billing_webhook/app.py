import sys

import uvicorn
from fastapi import FastAPI
from loguru import logger

from billing_webhook.config import Settings
from billing_webhook.services.billing_client import BillingClient
from billing_webhook.services.db_client import DatabaseClient
from billing_webhook.services.dispatcher import EventDispatcher
from billing_webhook.services.signature import SignatureVerifier
from billing_webhook.services.tiers import TierMapper
from billing_webhook.webhooks import router


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr at the given level."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level:<8}</level> | {name}:{line} | <level>{message}</level>",
    )


def create_app(
    settings: Settings | None = None,
    *,
    db: DatabaseClient | None = None,
    billing: BillingClient | None = None,
) -> FastAPI:
    """Build the application and its collaborators.

    Args:
        settings: Configuration; read from the environment when omitted.
        db: Database client; created from the Supabase settings when omitted.
        billing: Stripe client; created from the Stripe settings when omitted.
    """
    settings = settings or Settings()

    if db is None:
        db = DatabaseClient(url=settings.supabase_url, key=settings.supabase_service_role_key)
    if billing is None:
        billing = BillingClient(api_key=settings.stripe_secret_key)

    app = FastAPI(title="Stripe Webhook Service")
    app.state.settings = settings
    app.state.verifier = SignatureVerifier(
        settings.stripe_webhook_secret, tolerance=settings.stripe_webhook_tolerance
    )
    app.state.dispatcher = EventDispatcher(
        db=db, billing=billing, tiers=TierMapper.from_settings(settings)
    )
    app.include_router(router)
    return app


def run() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    logger.info("Stripe webhook service listening on port {}", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
