"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.api.middleware.error_handler import InvalidPaymentSessionError, NotFoundError
from src.services.checkout_service import CheckoutService
from src.services.reconciliation_service import ReconciliationService
from src.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CHECKOUT_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "payment_intent.succeeded",
}

SUBSCRIPTION_EVENTS = {
    "invoice.paid",
    "invoice.payment_failed",
    "customer.subscription.updated",
    "customer.subscription.paused",
    "customer.subscription.resumed",
    "customer.subscription.deleted",
}


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and processes Stripe webhook events. Requires valid signature.",
)
async def stripe_webhook(request: Request) -> dict[str, str]:
    """Handle Stripe webhook events.

    The Stripe signature is verified before processing.

    Handles:
    - checkout.session.completed / async_payment_succeeded: materializes the
      order or subscription (the success page may already have done so)
    - payment_intent.succeeded: materializes subscriptions paid by intent
    - invoice.paid / invoice.payment_failed: active / past_due
    - customer.subscription.updated / paused / resumed / deleted: mirrors the
      Stripe status, ignoring events older than the last recorded change
    - payment references that can never be reconciled (unknown session,
      deleted plan) are logged and acknowledged; gateway failures are not

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        dict: Acknowledgment message.

    Raises:
        HTTPException: 400 if signature is invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        event = CheckoutService().verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.error("Invalid webhook signature: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event.get("type", "")
    logger.info("Processing Stripe webhook event %s: %s", event.get("id"), event_type)

    if event_type in CHECKOUT_EVENTS:
        try:
            result = await ReconciliationService().handle_checkout_event(event)
        except (InvalidPaymentSessionError, NotFoundError) as e:
            # Redelivery cannot fix these; acknowledge so Stripe stops retrying
            logger.error(
                "Event %s (%s) for %s cannot be reconciled, needs manual follow-up: %s",
                event.get("id"),
                event_type,
                event["data"]["object"].get("id"),
                e.message,
            )
            return {"status": "received"}
        if result:
            logger.info(
                "Event %s reconciled %s %s (created=%s)",
                event.get("id"),
                result["kind"],
                result["id"],
                result["created"],
            )

    elif event_type in SUBSCRIPTION_EVENTS:
        await SubscriptionService().handle_subscription_event(event)

    else:
        # Log unhandled events but return 200 to acknowledge receipt
        logger.debug("Unhandled webhook event type: %s", event_type)

    return {"status": "received"}
