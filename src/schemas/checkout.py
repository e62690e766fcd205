"""Checkout Pydantic schemas for API request/response models."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.plan import SelectionItem


class SubscriptionCheckoutCreate(BaseModel):
    """Schema for starting a subscription checkout."""

    model_config = ConfigDict(from_attributes=True)

    plan_id: UUID = Field(description="Plan UUID to subscribe to")
    items: list[SelectionItem] = Field(default_factory=list, description="Customer-selected products")
    save_payment_method: bool = Field(default=False, description="Keep the card for future charges")


class OrderCartItem(BaseModel):
    """One product line in a one-time order cart."""

    product_id: UUID = Field(description="Product UUID")
    quantity: int = Field(ge=1, le=100, description="Units to buy")


class OrderCheckoutCreate(BaseModel):
    """Schema for starting a one-time order checkout."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderCartItem] = Field(min_length=1, description="Cart contents")
    shipping_address: str | None = Field(default=None, min_length=10, description="Defaults to the customer's address")
    delivery_instructions: str | None = Field(default=None, max_length=500)


class CheckoutSessionResponse(BaseModel):
    """Schema for checkout session creation response."""

    model_config = ConfigDict(from_attributes=True)

    checkout_url: str = Field(description="Stripe Checkout URL to redirect to")
    stripe_session_id: str = Field(description="Stripe Checkout Session ID")


class PaymentIntentResponse(BaseModel):
    """Schema for payment intent creation response."""

    model_config = ConfigDict(from_attributes=True)

    client_secret: str = Field(description="Client secret for confirming the intent in the browser")
    payment_intent_id: str = Field(description="Stripe PaymentIntent ID")
    amount: int = Field(description="Amount in cents")
    currency: str


class ReconciliationResponse(BaseModel):
    """Result of turning a confirmed payment into an order or subscription."""

    model_config = ConfigDict(from_attributes=True)

    kind: str = Field(description="order or subscription")
    id: UUID = Field(description="Order or subscription UUID")
    created: bool = Field(description="False when the record already existed")
    reference: str = Field(description="Payment-session reference")
    needs_review: bool = Field(default=False, description="Some paid items could not be materialized")
