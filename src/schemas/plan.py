"""Subscription plan Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FixedItemInput(BaseModel):
    """A product always shipped with the plan."""

    product_id: UUID = Field(description="Product UUID")
    quantity: int = Field(ge=1, description="Units per delivery")


class CustomizationRuleInput(BaseModel):
    """Quantity bound for one category the customer picks."""

    product_type: str = Field(min_length=1, max_length=50, description="Category tag")
    min_quantity: int = Field(ge=0, description="Minimum units the customer must pick")
    max_quantity: int = Field(ge=0, description="Maximum units the customer may pick")

    @model_validator(mode="after")
    def check_bounds(self) -> "CustomizationRuleInput":
        if self.min_quantity > self.max_quantity:
            raise ValueError("min_quantity must not exceed max_quantity")
        return self


def _check_unique_categories(rules: list[CustomizationRuleInput] | None) -> None:
    if not rules:
        return
    categories = [rule.product_type for rule in rules]
    if len(categories) != len(set(categories)):
        raise ValueError("Only one customization rule per product_type is allowed")


class PlanCreate(BaseModel):
    """Schema for creating a plan."""

    name: str = Field(min_length=3, max_length=255, description="Plan name")
    description: str | None = Field(default=None, description="Plan description")
    price: Decimal = Field(ge=0, decimal_places=2, description="Price per billing period in BRL")
    image_url: str | None = Field(default=None, description="Plan image URL")
    fixed_items: list[FixedItemInput] = Field(default_factory=list)
    customizable_rules: list[CustomizationRuleInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_rules(self) -> "PlanCreate":
        _check_unique_categories(self.customizable_rules)
        return self


class PlanUpdate(BaseModel):
    """Schema for a partial plan update.

    ``fixed_items`` and ``customizable_rules``, when present, replace the
    plan's current lists.
    """

    name: str | None = Field(default=None, min_length=3, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    image_url: str | None = None
    fixed_items: list[FixedItemInput] | None = None
    customizable_rules: list[CustomizationRuleInput] | None = None

    @model_validator(mode="after")
    def check_rules(self) -> "PlanUpdate":
        _check_unique_categories(self.customizable_rules)
        return self


class FixedItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    quantity: int
    product_name: str | None = None
    product_type: str | None = None


class CustomizationRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_type: str
    min_quantity: int
    max_quantity: int


class PlanResponse(BaseModel):
    """Schema for plan API responses, including items and rules."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Plan unique identifier")
    name: str
    slug: str
    description: str | None = None
    price: Decimal
    image_url: str | None = None
    stripe_product_id: str | None = None
    stripe_price_id: str | None = None
    fixed_items: list[FixedItemResponse] = Field(default_factory=list)
    customizable_rules: list[CustomizationRuleResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PlanListResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plans: list[PlanResponse]


class SelectionItem(BaseModel):
    """One product picked by the customer and its quantity."""

    product_id: UUID = Field(description="Product UUID")
    quantity: int = Field(ge=1, description="Units selected")


class CustomizationValidateRequest(BaseModel):
    """Request body for validating a selection against a plan's rules."""

    items: list[SelectionItem] = Field(default_factory=list)


class CustomizationValidateResponse(BaseModel):
    """Result of a selection check, one error per violated rule."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict, description="Selected units per category")
