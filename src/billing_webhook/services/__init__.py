"""Services for Stripe webhook processing."""

from billing_webhook.services.billing_client import BillingClient
from billing_webhook.services.db_client import (
    DatabaseClient,
    PropertyLink,
    SubscriptionRecord,
)
from billing_webhook.services.dispatcher import DispatchResult, EventDispatcher
from billing_webhook.services.errors import (
    DatabaseError,
    InvalidSignatureError,
    MissingRequiredDataError,
    MutationFailureError,
    WebhookError,
)
from billing_webhook.services.events import (
    CheckoutCompleted,
    SubscriptionDeleted,
    SubscriptionDetail,
    SubscriptionUpdated,
    UnhandledEvent,
    WebhookEvent,
    parse_event,
)
from billing_webhook.services.property_summary import PropertySummary, refresh_property_summary
from billing_webhook.services.signature import SignatureVerifier
from billing_webhook.services.tiers import SubscriptionTier, TierMapper

__all__ = [
    # Clients
    "BillingClient",
    "DatabaseClient",
    "PropertyLink",
    "SubscriptionRecord",
    # Dispatch
    "DispatchResult",
    "EventDispatcher",
    # Errors
    "DatabaseError",
    "InvalidSignatureError",
    "MissingRequiredDataError",
    "MutationFailureError",
    "WebhookError",
    # Events
    "CheckoutCompleted",
    "SubscriptionDeleted",
    "SubscriptionDetail",
    "SubscriptionUpdated",
    "UnhandledEvent",
    "WebhookEvent",
    "parse_event",
    # Property summary
    "PropertySummary",
    "refresh_property_summary",
    # Verification and tiers
    "SignatureVerifier",
    "SubscriptionTier",
    "TierMapper",
]
