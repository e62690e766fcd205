"""Customer profile API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import AdminUser, CurrentUser
from src.api.middleware.error_handler import NotFoundError
from src.schemas.customer import CustomerListResponse, CustomerResponse, CustomerUpdate
from src.services.customer_service import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get(
    "/me",
    response_model=CustomerResponse,
    summary="Get my profile",
    description="Returns the customer profile for the authenticated user, creating it on first access.",
)
async def get_me(user: CurrentUser) -> CustomerResponse:
    service = CustomerService()
    customer = await service.get_or_create_customer(user)
    return CustomerResponse(**customer)


@router.patch(
    "/me",
    response_model=CustomerResponse,
    summary="Update my profile",
    description="Updates name, phone, address or delivery instructions.",
)
async def update_me(data: CustomerUpdate, user: CurrentUser) -> CustomerResponse:
    service = CustomerService()
    await service.get_or_create_customer(user)
    customer = await service.update_customer(user.user_id, data)
    if not customer:
        raise NotFoundError("Cliente não encontrado")
    return CustomerResponse(**customer)


@router.get("", response_model=CustomerListResponse, summary="List customers")
async def list_customers(
    admin: AdminUser,
    search: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> CustomerListResponse:
    service = CustomerService()
    result = await service.list_customers(search=search, page=page, limit=limit)
    return CustomerListResponse(
        customers=[CustomerResponse(**c) for c in result["customers"]],
        total=result["total"],
    )


@router.get("/{customer_id}", response_model=CustomerResponse, summary="Get customer")
async def get_customer(customer_id: UUID, admin: AdminUser) -> CustomerResponse:
    service = CustomerService()
    customer = await service.get_customer(customer_id)
    if not customer:
        raise NotFoundError("Cliente não encontrado")
    return CustomerResponse(**customer)
