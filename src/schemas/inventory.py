"""Inventory Pydantic schemas."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

StockStatus = Literal["normal", "low", "critical"]


class InventoryItem(BaseModel):
    id: UUID
    name: str
    category: str
    current_stock: int
    is_available: bool = True
    status: StockStatus


class StockAdjustment(BaseModel):
    """Signed change to apply to a product's stock."""

    id: UUID = Field(description="Product UUID")
    quantity: int = Field(description="Units to add (positive) or remove (negative)")


class StockAdjustmentRequest(BaseModel):
    adjustments: list[StockAdjustment] = Field(min_length=1)


class StockAdjustmentResponse(BaseModel):
    message: str = "Estoque atualizado com sucesso"
    updated: int = Field(description="Number of products changed")
