"""Stripe webhook receiver that keeps property subscriptions in sync."""

__version__ = "0.1.0"
