"""Database model type definitions."""

from src.models.customer import Customer, CustomerUpdate
from src.models.order import Order, OrderItem, OrderStatus
from src.models.plan import PlanCustomizableItem, PlanFixedItem, PlanWithDetails, SubscriptionPlan
from src.models.product import Product, ProductCreate, ProductType, ProductUpdate
from src.models.subscription import SubscriptionItem, SubscriptionStatus, UserSubscription

__all__ = [
    "Customer",
    "CustomerUpdate",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PlanCustomizableItem",
    "PlanFixedItem",
    "PlanWithDetails",
    "Product",
    "ProductCreate",
    "ProductType",
    "ProductUpdate",
    "SubscriptionItem",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "UserSubscription",
]
