"""Customer profile and Stripe customer service."""

import logging
from typing import Any
from uuid import UUID

import stripe

from src.api.middleware.error_handler import PaymentGatewayError
from src.core.stripe import get_stripe
from src.core.supabase import get_supabase_client
from src.schemas.auth import UserContext
from src.schemas.customer import CustomerUpdate

logger = logging.getLogger(__name__)


class CustomerService:
    """Service for managing customer profiles and their Stripe counterparts."""

    def __init__(self) -> None:
        """Initialize customer service with clients."""
        self.client = get_supabase_client()
        self.stripe = get_stripe()

    async def get_or_create_customer(self, user: UserContext) -> dict[str, Any]:
        """Get the customer row for an auth user, creating it on first access.

        Args:
            user: The authenticated user.

        Returns:
            dict: The customer data.
        """
        response = (
            self.client.table("customers")
            .select("*")
            .eq("id", str(user.user_id))
            .execute()
        )

        if response.data:
            return response.data[0]

        # Concurrent first requests race on the primary key; the loser reads back
        response = (
            self.client.table("customers")
            .upsert(
                {"id": str(user.user_id), "email": user.email},
                on_conflict="id",
                ignore_duplicates=True,
            )
            .execute()
        )
        if response.data:
            logger.info("Created customer %s", user.user_id)
            return response.data[0]

        return await self.get_customer(user.user_id)

    async def get_customer(self, customer_id: UUID | str) -> dict[str, Any] | None:
        """Get a customer by ID.

        Args:
            customer_id: The customer's UUID.

        Returns:
            dict | None: The customer data or None if not found.
        """
        response = (
            self.client.table("customers")
            .select("*")
            .eq("id", str(customer_id))
            .execute()
        )

        return response.data[0] if response.data else None

    async def update_customer(
        self,
        customer_id: UUID,
        data: CustomerUpdate,
    ) -> dict[str, Any] | None:
        """Update a customer's delivery details.

        Args:
            customer_id: The customer's UUID.
            data: The fields to update.

        Returns:
            dict | None: The updated customer or None if not found.
        """
        update_data = data.model_dump(exclude_unset=True, exclude_none=True)

        if not update_data:
            return await self.get_customer(customer_id)

        response = (
            self.client.table("customers")
            .update(update_data)
            .eq("id", str(customer_id))
            .execute()
        )

        return response.data[0] if response.data else None

    async def list_customers(
        self,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List customers for administrators, newest first."""
        offset = (page - 1) * limit
        query = (
            self.client.table("customers")
            .select("*", count="exact")
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        if search:
            pattern = f"%{search}%"
            query = query.or_(f"name.ilike.{pattern},email.ilike.{pattern}")

        response = query.execute()
        customers = response.data or []
        return {
            "customers": customers,
            "total": response.count if response.count is not None else len(customers),
        }

    async def ensure_stripe_customer(self, customer: dict[str, Any]) -> str:
        """Return the customer's Stripe customer id, creating one if absent.

        Concurrent first checkouts share one Stripe customer: creation uses an
        idempotency key derived from the customer id, and the id is only
        stored while the column is still empty.

        Raises:
            PaymentGatewayError: If Stripe rejects or cannot be reached.
        """
        if customer.get("stripe_customer_id"):
            return customer["stripe_customer_id"]

        try:
            stripe_customer = self.stripe.Customer.create(
                email=customer.get("email"),
                name=customer.get("name"),
                metadata={"customer_id": str(customer["id"])},
                idempotency_key=f"customer-create-{customer['id']}",
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error creating customer for %s: %s", customer["id"], e)
            raise PaymentGatewayError() from e

        linked = (
            self.client.table("customers")
            .update({"stripe_customer_id": stripe_customer.id})
            .eq("id", str(customer["id"]))
            .is_("stripe_customer_id", "null")
            .execute()
        )
        if not linked.data:
            current = await self.get_customer(customer["id"])
            if current and current.get("stripe_customer_id"):
                logger.info(
                    "Customer %s already linked to Stripe customer %s",
                    customer["id"],
                    current["stripe_customer_id"],
                )
                return current["stripe_customer_id"]

        logger.info("Linked customer %s to Stripe customer %s", customer["id"], stripe_customer.id)
        return stripe_customer.id

    async def save_payment_method(
        self,
        customer_id: UUID | str,
        payment_method_id: str,
    ) -> str | None:
        """Attach a payment method to the customer and make it the default.

        Args:
            customer_id: The customer's UUID.
            payment_method_id: Stripe PaymentMethod id.

        Returns:
            str | None: The Stripe customer id, or None if the customer is unknown.

        Raises:
            PaymentGatewayError: If Stripe rejects or cannot be reached.
        """
        customer = await self.get_customer(customer_id)
        if not customer:
            logger.warning("Cannot save payment method, customer %s not found", customer_id)
            return None

        stripe_customer_id = await self.ensure_stripe_customer(customer)

        try:
            payment_method = self.stripe.PaymentMethod.retrieve(payment_method_id)
            if payment_method.get("customer") != stripe_customer_id:
                self.stripe.PaymentMethod.attach(payment_method_id, customer=stripe_customer_id)
            self.stripe.Customer.modify(
                stripe_customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
        except stripe.error.StripeError as e:
            logger.error(
                "Stripe error saving payment method %s for customer %s: %s",
                payment_method_id,
                customer_id,
                e,
            )
            raise PaymentGatewayError() from e

        logger.info("Saved payment method %s for customer %s", payment_method_id, customer_id)
        return stripe_customer_id
