"""Subscription model type definitions for database operations."""

from datetime import date, datetime
from typing import Literal, TypedDict
from uuid import UUID

# Status values stored in user_subscriptions.status
SubscriptionStatus = Literal["pending", "active", "paused", "cancelled", "past_due"]


class SubscriptionItem(TypedDict):
    """Row of subscription_items: the materialized basket of a subscription.

    ``is_fixed`` marks items that come from the plan rather than the
    customer's selection; customization rules only bound the latter.
    """

    id: UUID
    subscription_id: UUID
    product_id: UUID
    quantity: int
    is_fixed: bool


class UserSubscription(TypedDict):
    """user_subscriptions table row representation.

    ``stripe_payment_reference`` is the checkout session id or payment
    intent id the subscription was materialized from. It and
    ``stripe_subscription_id`` carry unique constraints.
    ``status_updated_at`` is the time of the last applied status change and
    guards against stale webhook events.
    """

    id: UUID
    customer_id: UUID
    plan_id: UUID
    plan_name: str | None
    status: SubscriptionStatus
    start_date: date
    next_delivery_date: datetime | None
    stripe_subscription_id: str | None
    stripe_payment_reference: str | None
    status_updated_at: datetime
    needs_review: bool
    created_at: datetime
    updated_at: datetime
