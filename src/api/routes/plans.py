"""Subscription plan API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import AdminUser
from src.api.middleware.error_handler import NotFoundError
from src.schemas.common import MessageResponse
from src.schemas.plan import (
    CustomizationValidateRequest,
    CustomizationValidateResponse,
    PlanCreate,
    PlanListResponse,
    PlanResponse,
    PlanUpdate,
)
from src.services.plan_service import PlanService

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get(
    "",
    response_model=PlanListResponse,
    summary="List plans",
    description="Public list of subscription plans with fixed items and customization rules.",
)
async def list_plans(
    search: Annotated[str | None, Query(max_length=100)] = None,
) -> PlanListResponse:
    service = PlanService()
    plans = await service.list_plans(search=search)
    return PlanListResponse(plans=[PlanResponse(**p) for p in plans])


@router.get("/slug/{slug}", response_model=PlanResponse, summary="Get plan by slug")
async def get_plan_by_slug(slug: str) -> PlanResponse:
    service = PlanService()
    plan = await service.get_plan_by_slug(slug)
    if not plan:
        raise NotFoundError("Plano não encontrado")
    return PlanResponse(**plan)


@router.get("/{plan_id}", response_model=PlanResponse, summary="Get plan")
async def get_plan(plan_id: UUID) -> PlanResponse:
    service = PlanService()
    plan = await service.get_plan(plan_id)
    if not plan:
        raise NotFoundError("Plano não encontrado")
    return PlanResponse(**plan)


@router.post(
    "/{plan_id}/customization/validate",
    response_model=CustomizationValidateResponse,
    summary="Validate a customization",
    description="Checks a basket selection against the plan's rules and returns one message per violated rule.",
)
async def validate_customization(
    plan_id: UUID,
    data: CustomizationValidateRequest,
) -> CustomizationValidateResponse:
    """Give interactive feedback on a selection.

    Rule violations come back as ``valid=false`` with messages. Unknown or
    disallowed products are a 422. Checkout repeats this check.

    Args:
        plan_id: The plan's UUID.
        data: The current selection.

    Returns:
        CustomizationValidateResponse: Validity, messages and per-category counts.
    """
    service = PlanService()
    result = await service.validate_selection(
        plan_id, [item.model_dump() for item in data.items]
    )
    return CustomizationValidateResponse(
        valid=result.valid, errors=result.errors, counts=result.counts
    )


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create plan",
)
async def create_plan(data: PlanCreate, admin: AdminUser) -> PlanResponse:
    """Create a plan. Admin only. 409 if the name's slug is taken."""
    service = PlanService()
    plan = await service.create_plan(data)
    return PlanResponse(**plan)


@router.patch("/{plan_id}", response_model=PlanResponse, summary="Update plan")
async def update_plan(plan_id: UUID, data: PlanUpdate, admin: AdminUser) -> PlanResponse:
    """Update a plan. Admin only. Lists sent in the body replace the stored ones."""
    service = PlanService()
    plan = await service.update_plan(plan_id, data)
    return PlanResponse(**plan)


@router.delete("/{plan_id}", response_model=MessageResponse, summary="Delete plan")
async def delete_plan(plan_id: UUID, admin: AdminUser) -> MessageResponse:
    """Delete a plan. Admin only. 409 while live subscriptions use it."""
    service = PlanService()
    await service.delete_plan(plan_id)
    return MessageResponse(message="Plano excluído com sucesso")
