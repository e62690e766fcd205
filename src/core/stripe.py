"""Stripe client configuration and singleton."""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Configure Stripe SDK with API key from settings.

    This should be called once at application startup.
    If Stripe keys are not configured, Stripe operations will fail with clear errors.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
    else:
        logger.warning("Stripe secret key not configured. Stripe features will not work.")


def get_stripe() -> stripe:
    """Get the configured Stripe module.

    Returns:
        stripe: The Stripe module with API key configured.

    Note:
        Stripe SDK uses module-level configuration, so this returns
        the stripe module itself. Ensure configure_stripe() has been
        called before using Stripe API calls.
    """
    return stripe


def to_cents(amount: Any) -> int:
    """Convert a decimal currency amount (e.g. ``"39.90"``) to integer cents."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> str:
    """Convert integer cents to a two-decimal string amount."""
    return str((Decimal(cents or 0) / 100).quantize(Decimal("0.01")))


async def check_payment_gateway() -> dict[str, Any]:
    """Report whether the payment gateway is configured. Does not call Stripe."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        return {"healthy": False, "error": "STRIPE_SECRET_KEY is not set"}
    if not settings.stripe_webhook_secret:
        return {"healthy": False, "error": "STRIPE_WEBHOOK_SECRET is not set"}
    return {"healthy": True}
