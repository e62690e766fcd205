"""Product Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    """Base product fields shared across schemas."""

    name: str = Field(..., min_length=3, max_length=255, description="Product name")
    description: str | None = Field(default=None, description="Product description")
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Unit price in BRL")
    image_url: str | None = Field(default=None, description="Product image URL")
    product_type: str = Field(..., min_length=1, max_length=50, description="Category tag (normal, exotic, ...)")
    stock_quantity: int = Field(default=0, ge=0, description="Units in stock")
    is_available: bool = Field(default=True, description="Whether the product is on sale")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""

    model_config = ConfigDict(from_attributes=True)


class ProductUpdate(BaseModel):
    """Schema for a partial product update."""

    name: str | None = Field(default=None, min_length=3, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    image_url: str | None = None
    product_type: str | None = Field(default=None, min_length=1, max_length=50)
    stock_quantity: int | None = Field(default=None, ge=0)
    is_available: bool | None = None


class ProductResponse(ProductBase):
    """Schema for product API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Product unique identifier")
    stripe_product_id: str | None = Field(default=None, description="Stripe Product ID")
    stripe_price_id: str | None = Field(default=None, description="Stripe Price ID")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""

    model_config = ConfigDict(from_attributes=True)

    products: list[ProductResponse] = Field(description="List of products")
    total: int = Field(description="Total matching products")
    page: int = Field(description="Current page")
    limit: int = Field(description="Page size")
