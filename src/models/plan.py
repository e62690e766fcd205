"""Subscription plan model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class PlanFixedItem(TypedDict):
    """Row of plan_fixed_items: a product always shipped with the plan."""

    id: UUID
    plan_id: UUID
    product_id: UUID
    quantity: int


class PlanCustomizableItem(TypedDict):
    """Row of plan_customizable_items: one customization rule per category.

    The customer-chosen quantity of products whose ``product_type`` equals
    this row's ``product_type`` must lie in ``[min_quantity, max_quantity]``.
    """

    id: UUID
    plan_id: UUID
    product_type: str
    min_quantity: int
    max_quantity: int


class SubscriptionPlan(TypedDict):
    """subscription_plans table row representation."""

    id: UUID
    name: str
    slug: str
    description: str | None
    price: str
    image_url: str | None
    stripe_product_id: str | None
    stripe_price_id: str | None
    created_at: datetime
    updated_at: datetime


class PlanWithDetails(SubscriptionPlan, total=False):
    """Plan row joined with its fixed items and customization rules."""

    fixed_items: list[PlanFixedItem]
    customizable_rules: list[PlanCustomizableItem]
