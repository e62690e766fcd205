"""Order API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from src.api.deps import AdminUser, CurrentUser
from src.schemas.order import (
    OrderListResponse,
    OrderResponse,
    OrderStatus,
    OrderStatusUpdate,
)
from src.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders of the authenticated customer.",
)
async def list_my_orders(user: CurrentUser) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_for_customer(user.user_id)
    return OrderListResponse(orders=[OrderResponse(**o) for o in orders], total=len(orders))


@router.get(
    "/admin",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Admin only. Optional status filter.",
)
async def list_all_orders(
    admin: AdminUser,
    order_status: Annotated[OrderStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> OrderListResponse:
    service = OrderService()
    result = await service.list_orders(status=order_status, page=page, limit=limit)
    return OrderListResponse(
        orders=[OrderResponse(**o) for o in result["orders"]],
        total=result["total"],
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order. Customers only see their own orders.",
)
async def get_order(order_id: UUID, user: CurrentUser) -> OrderResponse:
    """Get a single order by ID.

    Args:
        order_id: The order's UUID.
        user: The authenticated user.

    Returns:
        OrderResponse: The order data.

    Raises:
        NotFoundError: 404 if order not found.
        AuthorizationError: 403 if not authorized to view this order.
    """
    service = OrderService()
    order = await service.get_order_for_user(order_id, user)
    return OrderResponse(**order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Update order status",
    description="Admin only. Moves an order through fulfilment.",
)
async def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    admin: AdminUser,
) -> OrderResponse:
    service = OrderService()
    order = await service.update_status(order_id, data.status)
    return OrderResponse(**order)
