"""Error taxonomy for webhook processing.

The HTTP layer maps these onto status codes:
- InvalidSignatureError, MissingRequiredDataError: 400, nothing was written
- MutationFailureError: 500, earlier writes of the same event are kept
- DatabaseError: raised by the database layer; fatal only where a later
  step depends on the write
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for webhook processing errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class InvalidSignatureError(WebhookError):
    """Raised when the payload signature cannot be verified."""


class MissingRequiredDataError(WebhookError):
    """Raised when an event lacks fields needed to process it."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class MutationFailureError(WebhookError):
    """Raised when a write the rest of the event depends on fails."""


class DatabaseError(WebhookError):
    """Raised when a database operation fails or returns nothing usable."""
