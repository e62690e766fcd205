"""Inventory API routes. Admin only."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.deps import AdminUser
from src.schemas.inventory import (
    InventoryItem,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
    StockStatus,
)
from src.services.inventory_service import InventoryService, get_inventory_service

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("", response_model=list[InventoryItem], summary="List stock levels")
async def list_inventory(
    admin: AdminUser,
    category: Annotated[str | None, Query(description="Filter by category tag")] = None,
    stock_status: Annotated[StockStatus | None, Query(alias="status")] = None,
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> list[InventoryItem]:
    items = await inventory_service.list_inventory(category=category, status=stock_status)
    return [InventoryItem(**item) for item in items]


@router.patch("", response_model=StockAdjustmentResponse, summary="Adjust stock")
async def adjust_inventory(
    data: StockAdjustmentRequest,
    admin: AdminUser,
    inventory_service: InventoryService = Depends(get_inventory_service),
) -> StockAdjustmentResponse:
    """Apply signed stock changes. Results clamp at zero; unknown products are skipped."""
    updates = await inventory_service.adjust_stock(
        [{"id": str(a.id), "quantity": a.quantity} for a in data.adjustments]
    )
    return StockAdjustmentResponse(updated=len(updates))
