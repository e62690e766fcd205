"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

# Order status values
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

PaymentStatus = Literal["pending", "paid", "refunded"]


class OrderItem(TypedDict):
    """Row of order_items."""

    id: UUID
    order_id: UUID
    product_id: UUID
    quantity: int
    unit_price: str
    total_price: str


class Order(TypedDict):
    """orders table row representation.

    ``stripe_payment_intent_id`` holds the payment-session reference the
    order was materialized from and is unique.
    """

    id: UUID
    customer_id: UUID
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: str
    shipping_address: str
    delivery_instructions: str | None
    stripe_payment_intent_id: str
    needs_review: bool
    created_at: datetime
    updated_at: datetime
