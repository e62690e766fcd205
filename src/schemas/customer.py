"""Customer Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CustomerUpdate(BaseModel):
    """Delivery details a customer may change."""

    name: str | None = Field(default=None, min_length=3, max_length=255)
    phone: str | None = Field(default=None, min_length=10, max_length=20)
    address: str | None = Field(default=None, min_length=10)
    delivery_instructions: str | None = None


class CustomerResponse(BaseModel):
    """Schema for customer API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    delivery_instructions: str | None = None
    created_at: datetime
    updated_at: datetime


class CustomerListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customers: list[CustomerResponse]
    total: int
