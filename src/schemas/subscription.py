"""Subscription Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

SubscriptionStatus = Literal["pending", "active", "paused", "cancelled", "past_due"]


class SubscriptionItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: str | None = None
    product_type: str | None = None
    quantity: int
    is_fixed: bool = False


class SubscriptionResponse(BaseModel):
    """Schema for subscription API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Subscription unique identifier")
    customer_id: UUID
    plan_id: UUID
    plan_name: str | None = None
    status: SubscriptionStatus
    start_date: date
    next_delivery_date: datetime | None = None
    stripe_subscription_id: str | None = None
    needs_review: bool = False
    items: list[SubscriptionItemResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SubscriptionListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscriptions: list[SubscriptionResponse]
    total: int
