"""Checkout API routes for Stripe integration."""

from typing import Annotated, Any

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser
from src.api.middleware.error_handler import AuthorizationError
from src.schemas.auth import UserContext
from src.schemas.checkout import (
    CheckoutSessionResponse,
    OrderCheckoutCreate,
    PaymentIntentResponse,
    ReconciliationResponse,
    SubscriptionCheckoutCreate,
)
from src.services.checkout_service import CheckoutService
from src.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/checkout", tags=["checkout"])


def _to_response(result: dict[str, Any], user: UserContext) -> ReconciliationResponse:
    """Hide records that belong to someone else."""
    if not user.is_admin and str(result["record"]["customer_id"]) != str(user.user_id):
        raise AuthorizationError("Não autorizado")
    return ReconciliationResponse(
        kind=result["kind"],
        id=result["id"],
        created=result["created"],
        reference=result["reference"],
        needs_review=result["needs_review"],
    )


@router.post(
    "/subscription",
    response_model=CheckoutSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create subscription Checkout Session",
    description="Validates the basket against the plan's rules and creates a Stripe Checkout Session in subscription mode.",
)
async def create_subscription_checkout(
    data: SubscriptionCheckoutCreate,
    user: CurrentUser,
) -> CheckoutSessionResponse:
    """Create a Stripe Checkout Session for a customized plan.

    The frontend should redirect to the returned checkout_url.

    Args:
        data: Plan, selection and payment method preference.
        user: The authenticated customer.

    Returns:
        CheckoutSessionResponse: Contains checkout_url for redirect.
    """
    service = CheckoutService()
    result = await service.create_subscription_checkout(
        user=user,
        plan_id=data.plan_id,
        items=[item.model_dump() for item in data.items],
        save_payment_method=data.save_payment_method,
    )
    return CheckoutSessionResponse(**result)


@router.post(
    "/subscription/payment-intent",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create subscription PaymentIntent",
    description="Same validation as the Checkout Session flow, for an embedded card form.",
)
async def create_subscription_payment_intent(
    data: SubscriptionCheckoutCreate,
    user: CurrentUser,
) -> PaymentIntentResponse:
    service = CheckoutService()
    result = await service.create_subscription_payment_intent(
        user=user,
        plan_id=data.plan_id,
        items=[item.model_dump() for item in data.items],
        save_payment_method=data.save_payment_method,
    )
    return PaymentIntentResponse(**result)


@router.post(
    "/order",
    response_model=CheckoutSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order Checkout Session",
    description="Creates a Stripe Checkout Session in payment mode for a one-time cart.",
)
async def create_order_checkout(
    data: OrderCheckoutCreate,
    user: CurrentUser,
) -> CheckoutSessionResponse:
    service = CheckoutService()
    result = await service.create_order_checkout(
        user=user,
        items=[item.model_dump() for item in data.items],
        shipping_address=data.shipping_address,
        delivery_instructions=data.delivery_instructions,
    )
    return CheckoutSessionResponse(**result)


@router.get(
    "/order/success",
    response_model=ReconciliationResponse,
    summary="Confirm a paid order",
    description="Called from the success page. Creates the order once Stripe reports the session paid.",
    responses={
        402: {"description": "Payment not confirmed yet"},
        404: {"description": "Unknown checkout session"},
    },
)
async def order_success(
    user: CurrentUser,
    session_id: Annotated[str, Query(min_length=1, description="Stripe Checkout Session ID")],
) -> ReconciliationResponse:
    service = ReconciliationService()
    result = await service.reconcile_order(session_id)
    return _to_response(result, user)


@router.get(
    "/subscription/success",
    response_model=ReconciliationResponse,
    summary="Confirm a paid subscription",
    description="Called from the success page. Creates the subscription once Stripe reports the session paid.",
    responses={
        402: {"description": "Payment not confirmed yet"},
        404: {"description": "Unknown checkout session"},
    },
)
async def subscription_success(
    user: CurrentUser,
    session_id: Annotated[str, Query(min_length=1, description="Stripe Checkout Session ID")],
    plan_id: Annotated[str | None, Query(description="Plan UUID, used only if the session lacks it")] = None,
) -> ReconciliationResponse:
    service = ReconciliationService()
    result = await service.reconcile_subscription(session_id, plan_id=plan_id)
    return _to_response(result, user)


@router.post(
    "/subscription/payment-intent/{payment_intent_id}/confirm",
    response_model=ReconciliationResponse,
    summary="Confirm a subscription paid by PaymentIntent",
    responses={
        402: {"description": "Payment not confirmed yet"},
        404: {"description": "Unknown payment intent"},
    },
)
async def confirm_subscription_payment_intent(
    payment_intent_id: str,
    user: CurrentUser,
) -> ReconciliationResponse:
    service = ReconciliationService()
    result = await service.reconcile_subscription_payment_intent(payment_intent_id)
    return _to_response(result, user)
