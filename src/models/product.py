"""Product model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class ProductType(str, Enum):
    """Product category tags used by plan customization rules."""

    NORMAL = "normal"
    EXOTIC = "exotic"
    INDIVIDUAL = "individual"


class Product(TypedDict):
    """Product table row representation.

    ``price`` is a numeric column serialized by PostgREST as a string.
    """

    id: UUID
    name: str
    description: str | None
    price: str
    image_url: str | None
    product_type: str
    stock_quantity: int
    is_available: bool
    stripe_product_id: str | None
    stripe_price_id: str | None
    created_at: datetime
    updated_at: datetime


class ProductCreate(TypedDict, total=False):
    """Data required to create a new product."""

    name: str
    description: str | None
    price: str
    image_url: str | None
    product_type: str
    stock_quantity: int
    is_available: bool


class ProductUpdate(TypedDict, total=False):
    """Data that can be updated on a product."""

    name: str
    description: str | None
    price: str
    image_url: str | None
    product_type: str
    stock_quantity: int
    is_available: bool
    stripe_product_id: str
    stripe_price_id: str
