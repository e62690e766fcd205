"""Subscription API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import AdminUser, CurrentUser
from src.schemas.subscription import (
    SubscriptionListResponse,
    SubscriptionResponse,
    SubscriptionStatus,
)
from src.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("", response_model=SubscriptionListResponse, summary="List my subscriptions")
async def list_my_subscriptions(user: CurrentUser) -> SubscriptionListResponse:
    service = SubscriptionService()
    subscriptions = await service.list_for_customer(user.user_id)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse(**s) for s in subscriptions],
        total=len(subscriptions),
    )


@router.get("/admin", response_model=SubscriptionListResponse, summary="List all subscriptions")
async def list_all_subscriptions(
    admin: AdminUser,
    subscription_status: Annotated[SubscriptionStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> SubscriptionListResponse:
    service = SubscriptionService()
    result = await service.list_subscriptions(status=subscription_status, page=page, limit=limit)
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse(**s) for s in result["subscriptions"]],
        total=result["total"],
    )


@router.get("/{subscription_id}", response_model=SubscriptionResponse, summary="Get subscription")
async def get_subscription(subscription_id: UUID, user: CurrentUser) -> SubscriptionResponse:
    service = SubscriptionService()
    subscription = await service.get_for_actor(subscription_id, user)
    return SubscriptionResponse(**subscription)


@router.post(
    "/{subscription_id}/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel subscription",
    responses={
        400: {"description": "Subscription already cancelled"},
        502: {"description": "Payment gateway failed; nothing changed"},
    },
)
async def cancel_subscription(subscription_id: UUID, user: CurrentUser) -> SubscriptionResponse:
    """Cancel a subscription. Owner or admin.

    Stripe is cancelled first; if that fails the subscription is unchanged.
    """
    service = SubscriptionService()
    subscription = await service.cancel(subscription_id, user)
    return SubscriptionResponse(**subscription)


@router.post(
    "/{subscription_id}/pause",
    response_model=SubscriptionResponse,
    summary="Pause subscription",
    responses={
        400: {"description": "Subscription already paused or not active"},
        502: {"description": "Payment gateway failed; nothing changed"},
    },
)
async def pause_subscription(subscription_id: UUID, user: CurrentUser) -> SubscriptionResponse:
    service = SubscriptionService()
    subscription = await service.pause(subscription_id, user)
    return SubscriptionResponse(**subscription)


@router.post(
    "/{subscription_id}/resume",
    response_model=SubscriptionResponse,
    summary="Resume subscription",
    responses={
        400: {"description": "Subscription is not paused"},
        502: {"description": "Payment gateway failed; nothing changed"},
    },
)
async def resume_subscription(subscription_id: UUID, user: CurrentUser) -> SubscriptionResponse:
    service = SubscriptionService()
    subscription = await service.resume(subscription_id, user)
    return SubscriptionResponse(**subscription)
