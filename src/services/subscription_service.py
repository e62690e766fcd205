"""Subscription lifecycle business logic service."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import stripe

from src.api.middleware.error_handler import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    PaymentGatewayError,
)
from src.core.stripe import get_stripe
from src.core.supabase import get_supabase_client
from src.schemas.auth import UserContext
from src.services.delivery_schedule import next_delivery_date

logger = logging.getLogger(__name__)

# Allowed status changes. cancelled is terminal.
TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"active", "past_due", "cancelled"}),
    "active": frozenset({"paused", "past_due", "cancelled"}),
    "paused": frozenset({"active", "cancelled"}),
    "past_due": frozenset({"active", "cancelled"}),
    "cancelled": frozenset(),
}

# Stripe subscription.status -> local status
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "canceled": "cancelled",
    "paused": "paused",
}

EVENT_STATUS = {
    "invoice.paid": "active",
    "invoice.payment_failed": "past_due",
    "customer.subscription.paused": "paused",
    "customer.subscription.resumed": "active",
    "customer.subscription.deleted": "cancelled",
}


def can_transition(current: str, target: str) -> bool:
    """Check whether ``current -> target`` is an allowed status change."""
    return target in TRANSITIONS.get(current, frozenset())


def source_statuses(target: str) -> list[str]:
    """Statuses from which ``target`` can be reached."""
    return sorted(status for status, targets in TRANSITIONS.items() if target in targets)


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Extract the Stripe subscription id from an invoice payload.

    Newer API versions moved it under ``parent.subscription_details``.
    """
    subscription = invoice.get("subscription")
    if not subscription:
        parent = invoice.get("parent") or {}
        subscription = (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("id")
    return subscription


class SubscriptionService:
    """Service for reading subscriptions and driving their lifecycle.

    Customer actions (cancel, pause, resume) call Stripe first and only then
    update the local row, so a gateway failure leaves local state untouched.
    Every status write is a conditional update that requires a valid source
    status and a ``status_updated_at`` older than the change being applied;
    stale webhook events therefore cannot regress a newer state.
    """

    def __init__(self) -> None:
        """Initialize subscription service with clients."""
        self.client = get_supabase_client()
        self.stripe = get_stripe()

    async def _attach_items(self, subscriptions: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not subscriptions:
            return []

        ids = [str(s["id"]) for s in subscriptions]
        items = (
            self.client.table("subscription_items")
            .select("*")
            .in_("subscription_id", ids)
            .execute()
        ).data or []

        product_ids = list({str(i["product_id"]) for i in items})
        names: dict[str, dict[str, Any]] = {}
        if product_ids:
            rows = (
                self.client.table("products")
                .select("id, name, product_type")
                .in_("id", product_ids)
                .execute()
            ).data or []
            names = {str(p["id"]): p for p in rows}

        for subscription in subscriptions:
            sid = str(subscription["id"])
            subscription["items"] = [
                {
                    **item,
                    "product_name": names.get(str(item["product_id"]), {}).get("name"),
                    "product_type": names.get(str(item["product_id"]), {}).get("product_type"),
                }
                for item in items
                if str(item["subscription_id"]) == sid
            ]
        return subscriptions

    async def get_subscription(self, subscription_id: UUID | str) -> dict[str, Any] | None:
        """Get a subscription with its items.

        Args:
            subscription_id: The subscription's UUID.

        Returns:
            dict | None: The subscription or None if not found.
        """
        response = (
            self.client.table("user_subscriptions")
            .select("*")
            .eq("id", str(subscription_id))
            .execute()
        )
        if not response.data:
            return None
        return (await self._attach_items(response.data))[0]

    async def list_for_customer(self, customer_id: UUID) -> list[dict[str, Any]]:
        """List a customer's subscriptions, newest first."""
        response = (
            self.client.table("user_subscriptions")
            .select("*")
            .eq("customer_id", str(customer_id))
            .order("created_at", desc=True)
            .execute()
        )
        return await self._attach_items(response.data or [])

    async def list_subscriptions(
        self,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List all subscriptions for administrators."""
        offset = (page - 1) * limit
        query = (
            self.client.table("user_subscriptions")
            .select("*", count="exact")
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        if status:
            query = query.eq("status", status)

        response = query.execute()
        subscriptions = response.data or []
        return {
            "subscriptions": subscriptions,
            "total": response.count if response.count is not None else len(subscriptions),
        }

    async def get_for_actor(self, subscription_id: UUID, user: UserContext) -> dict[str, Any]:
        """Load a subscription the user owns, or any subscription for admins.

        Raises:
            NotFoundError: If the subscription does not exist.
            AuthorizationError: If the user neither owns it nor is an admin.
        """
        subscription = await self.get_subscription(subscription_id)
        if not subscription:
            raise NotFoundError("Assinatura não encontrada")
        if not user.is_admin and str(subscription["customer_id"]) != str(user.user_id):
            raise AuthorizationError("Não autorizado")
        return subscription

    def _apply_status(
        self,
        subscription_id: str,
        target: str,
        at: datetime,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Conditionally write a new status.

        The row changes only if its current status may move to ``target`` and
        its last status change is older than ``at``.

        Returns:
            dict | None: The updated row, or None if the guard rejected it.
        """
        update = {"status": target, "status_updated_at": at.isoformat(), **(extra or {})}
        response = (
            self.client.table("user_subscriptions")
            .update(update)
            .eq("id", subscription_id)
            .in_("status", source_statuses(target))
            .lt("status_updated_at", at.isoformat())
            .execute()
        )
        return response.data[0] if response.data else None

    async def _local_transition(
        self, subscription: dict[str, Any], target: str, extra: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        updated = self._apply_status(
            str(subscription["id"]), target, datetime.now(timezone.utc), extra
        )
        if updated is None:
            # A concurrent change won; report the row as it is now
            logger.warning(
                "Subscription %s changed concurrently, %s not applied locally",
                subscription["id"],
                target,
            )
            current = await self.get_subscription(subscription["id"])
            return current or subscription

        logger.info("Subscription %s is now %s", subscription["id"], target)
        return (await self._attach_items([updated]))[0]

    def _gateway_call(self, subscription: dict[str, Any], action: str, call: Any) -> None:
        """Run a Stripe call for a subscription action, mapping failures."""
        if not subscription.get("stripe_subscription_id"):
            return
        try:
            call()
        except stripe.error.StripeError as e:
            logger.error(
                "Stripe error on %s of subscription %s (%s): %s",
                action,
                subscription["id"],
                subscription["stripe_subscription_id"],
                e,
            )
            raise PaymentGatewayError() from e

    async def cancel(self, subscription_id: UUID, user: UserContext) -> dict[str, Any]:
        """Cancel a subscription at Stripe, then locally.

        Args:
            subscription_id: The subscription's UUID.
            user: Owner or administrator.

        Returns:
            dict: The updated subscription.

        Raises:
            NotFoundError: Unknown subscription.
            AuthorizationError: Not the owner and not an admin.
            InvalidStateError: Already cancelled. Stripe is not called.
            PaymentGatewayError: Stripe failed; local status is unchanged.
        """
        subscription = await self.get_for_actor(subscription_id, user)
        if subscription["status"] == "cancelled":
            raise InvalidStateError("Assinatura já está cancelada")

        stripe_id = subscription.get("stripe_subscription_id")
        self._gateway_call(
            subscription, "cancel", lambda: self.stripe.Subscription.cancel(stripe_id)
        )
        return await self._local_transition(subscription, "cancelled")

    async def pause(self, subscription_id: UUID, user: UserContext) -> dict[str, Any]:
        """Pause billing and deliveries, at Stripe first.

        Raises:
            InvalidStateError: Already paused, or not active.
            PaymentGatewayError: Stripe failed; local status is unchanged.
        """
        subscription = await self.get_for_actor(subscription_id, user)
        status = subscription["status"]
        if status == "paused":
            raise InvalidStateError("Assinatura já está pausada")
        if status == "cancelled":
            raise InvalidStateError("Assinatura já está cancelada")
        if not can_transition(status, "paused"):
            raise InvalidStateError("Somente assinaturas ativas podem ser pausadas")

        stripe_id = subscription.get("stripe_subscription_id")
        self._gateway_call(
            subscription,
            "pause",
            lambda: self.stripe.Subscription.modify(stripe_id, pause_collection={"behavior": "void"}),
        )
        return await self._local_transition(subscription, "paused", {"next_delivery_date": None})

    async def resume(self, subscription_id: UUID, user: UserContext) -> dict[str, Any]:
        """Resume a paused subscription, at Stripe first.

        Raises:
            InvalidStateError: The subscription is not paused.
            PaymentGatewayError: Stripe failed; local status is unchanged.
        """
        subscription = await self.get_for_actor(subscription_id, user)
        if subscription["status"] == "cancelled":
            raise InvalidStateError("Assinatura já está cancelada")
        if subscription["status"] != "paused":
            raise InvalidStateError("Assinatura não está pausada")

        stripe_id = subscription.get("stripe_subscription_id")
        self._gateway_call(
            subscription,
            "resume",
            lambda: self.stripe.Subscription.modify(stripe_id, pause_collection=""),
        )
        return await self._local_transition(
            subscription, "active", {"next_delivery_date": next_delivery_date().isoformat()}
        )

    async def apply_gateway_status(
        self,
        stripe_subscription_id: str,
        target: str,
        event_created: int,
        event_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply a status reported by a Stripe event.

        Re-delivered events and events older than the last recorded change are
        ignored.

        Args:
            stripe_subscription_id: Stripe subscription id.
            target: Local status the event implies.
            event_created: Event creation time, Unix seconds.
            event_id: Stripe event id, for logging.

        Returns:
            dict | None: The updated row, or None if nothing changed.
        """
        response = (
            self.client.table("user_subscriptions")
            .select("*")
            .eq("stripe_subscription_id", stripe_subscription_id)
            .execute()
        )
        if not response.data:
            logger.info(
                "Event %s: no local subscription for %s yet", event_id, stripe_subscription_id
            )
            return None

        subscription = response.data[0]
        if subscription["status"] == target:
            return None
        if not can_transition(subscription["status"], target):
            logger.info(
                "Event %s: ignoring %s -> %s for subscription %s",
                event_id,
                subscription["status"],
                target,
                subscription["id"],
            )
            return None

        at = datetime.fromtimestamp(event_created, tz=timezone.utc)
        extra = {"next_delivery_date": next_delivery_date().isoformat()} if target == "active" else None
        if target in ("paused", "cancelled"):
            extra = {"next_delivery_date": None}

        updated = self._apply_status(str(subscription["id"]), target, at, extra)
        if updated is None:
            logger.info(
                "Event %s: stale %s for subscription %s ignored",
                event_id,
                target,
                subscription["id"],
            )
            return None

        logger.info("Event %s: subscription %s is now %s", event_id, subscription["id"], target)
        return updated

    async def handle_subscription_event(self, event: dict[str, Any]) -> dict[str, Any] | None:
        """Dispatch an invoice or customer.subscription webhook event."""
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type.startswith("invoice."):
            stripe_subscription_id = _invoice_subscription_id(obj)
            target = EVENT_STATUS.get(event_type)
        elif event_type == "customer.subscription.updated":
            stripe_subscription_id = obj.get("id")
            target = STRIPE_STATUS_MAP.get(obj.get("status"))
            if target == "active" and obj.get("pause_collection"):
                target = "paused"
        else:
            stripe_subscription_id = obj.get("id")
            target = EVENT_STATUS.get(event_type)

        if not stripe_subscription_id or not target:
            logger.info("Event %s (%s) carries no applicable subscription status", event.get("id"), event_type)
            return None

        return await self.apply_gateway_status(
            stripe_subscription_id, target, int(event["created"]), event.get("id")
        )
