"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class OrderItemResponse(BaseModel):
    """Schema for a single line of an order."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Order unique identifier")
    customer_id: UUID
    status: OrderStatus
    payment_status: str
    total_amount: Decimal
    shipping_address: str
    delivery_instructions: str | None = None
    stripe_payment_intent_id: str = Field(description="Payment-session reference")
    needs_review: bool = False
    items: list[OrderItemResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    orders: list[OrderResponse]
    total: int


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
