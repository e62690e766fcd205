"""Customer model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Customer(TypedDict):
    """customers table row representation.

    ``id`` is the Supabase auth user id.
    """

    id: UUID
    email: str | None
    name: str | None
    phone: str | None
    address: str | None
    delivery_instructions: str | None
    stripe_customer_id: str | None
    created_at: datetime
    updated_at: datetime


class CustomerUpdate(TypedDict, total=False):
    """Delivery details a customer may change."""

    name: str
    phone: str
    address: str
    delivery_instructions: str
