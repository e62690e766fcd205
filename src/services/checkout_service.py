"""Checkout business logic: creating Stripe payment sessions."""

import logging
from typing import Any
from uuid import UUID

import stripe

from src.api.middleware.error_handler import (
    CustomizationError,
    NotFoundError,
    PaymentGatewayError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.stripe import get_stripe, to_cents
from src.core.supabase import get_supabase_client
from src.schemas.auth import UserContext
from src.services.customer_service import CustomerService
from src.services.customization import CustomizationSelection
from src.services.plan_service import PlanService

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for creating Stripe checkout sessions and payment intents.

    Nothing is written to the orders or subscriptions tables here; records are
    materialized from the confirmed payment by ReconciliationService.
    """

    def __init__(self) -> None:
        """Initialize checkout service with clients."""
        self.client = get_supabase_client()
        self.stripe = get_stripe()
        self.settings = get_settings()
        self.plan_service = PlanService()
        self.customer_service = CustomerService()

    def _require_stripe(self) -> None:
        if not self.settings.stripe_secret_key:
            raise PaymentGatewayError("Pagamentos indisponíveis no momento.")

    async def _validated_selection(
        self, plan_id: UUID, items: list[dict[str, Any]]
    ) -> tuple[dict[str, Any], CustomizationSelection]:
        """Load the plan and authoritatively check the customer's selection.

        Raises:
            NotFoundError: If the plan does not exist.
            ValidationError: If a product is unknown, unavailable, out of stock
                or outside the plan's categories.
            CustomizationError: If any customization rule is violated.
        """
        plan = await self.plan_service.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Plano não encontrado")

        selection, _ = await self.plan_service.build_selection(plan, items, check_stock=True)
        result = selection.validate()
        if not result.valid:
            logger.info("Rejected selection for plan %s: %s", plan_id, result.errors)
            raise CustomizationError(result.errors)

        return plan, selection

    def _subscription_metadata(
        self,
        plan: dict[str, Any],
        customer: dict[str, Any],
        selection: CustomizationSelection,
        save_payment_method: bool,
    ) -> dict[str, str]:
        # Stripe metadata values must be strings
        return {
            "plan_id": str(plan["id"]),
            "customer_id": str(customer["id"]),
            "save_payment_method": "true" if save_payment_method else "false",
            **selection.to_metadata(),
        }

    def _plan_line_item(self, plan: dict[str, Any]) -> dict[str, Any]:
        if plan.get("stripe_price_id"):
            return {"price": plan["stripe_price_id"], "quantity": 1}
        return {
            "price_data": {
                "currency": self.settings.currency,
                "unit_amount": to_cents(plan["price"]),
                "recurring": {"interval": self.settings.subscription_interval},
                "product_data": {"name": plan["name"], "metadata": {"plan_id": str(plan["id"])}},
            },
            "quantity": 1,
        }

    async def create_subscription_checkout(
        self,
        user: UserContext,
        plan_id: UUID,
        items: list[dict[str, Any]],
        save_payment_method: bool = False,
    ) -> dict[str, Any]:
        """Create a Stripe subscription Checkout Session for a customized plan.

        Customization is included in the plan price, so the session charges
        exactly the plan. The selection travels in session metadata and is
        read back from Stripe on reconciliation.

        Args:
            user: The authenticated customer.
            plan_id: Plan UUID.
            items: Customer-selected ``{product_id, quantity}`` pairs.
            save_payment_method: Keep the card as the customer's default.

        Returns:
            dict: Contains checkout_url and stripe_session_id.

        Raises:
            NotFoundError, ValidationError, CustomizationError: Invalid request.
            PaymentGatewayError: If Stripe fails or is not configured.
        """
        self._require_stripe()
        plan, selection = await self._validated_selection(plan_id, items)

        customer = await self.customer_service.get_or_create_customer(user)
        stripe_customer_id = await self.customer_service.ensure_stripe_customer(customer)
        metadata = self._subscription_metadata(plan, customer, selection, save_payment_method)

        frontend = self.settings.frontend_url.rstrip("/")
        try:
            session = self.stripe.checkout.Session.create(
                mode="subscription",
                customer=stripe_customer_id,
                client_reference_id=str(customer["id"]),
                line_items=[self._plan_line_item(plan)],
                success_url=(
                    f"{frontend}/checkout/subscription/success"
                    f"?session_id={{CHECKOUT_SESSION_ID}}&plan_id={plan['id']}"
                ),
                cancel_url=f"{frontend}/checkout/subscription?canceled=true",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error creating subscription checkout for plan %s: %s", plan_id, e)
            raise PaymentGatewayError() from e

        logger.info("Created subscription checkout %s for customer %s", session.id, customer["id"])
        return {"checkout_url": session.url, "stripe_session_id": session.id}

    async def create_subscription_payment_intent(
        self,
        user: UserContext,
        plan_id: UUID,
        items: list[dict[str, Any]],
        save_payment_method: bool = False,
    ) -> dict[str, Any]:
        """Create a PaymentIntent for the first period of a customized plan.

        Used by the embedded card form instead of a hosted Checkout page.

        Returns:
            dict: Contains client_secret, payment_intent_id, amount and currency.

        Raises:
            NotFoundError, ValidationError, CustomizationError: Invalid request.
            PaymentGatewayError: If Stripe fails or is not configured.
        """
        self._require_stripe()
        plan, selection = await self._validated_selection(plan_id, items)

        customer = await self.customer_service.get_or_create_customer(user)
        stripe_customer_id = await self.customer_service.ensure_stripe_customer(customer)
        metadata = self._subscription_metadata(plan, customer, selection, save_payment_method)
        amount = to_cents(plan["price"])

        params: dict[str, Any] = {
            "amount": amount,
            "currency": self.settings.currency,
            "customer": stripe_customer_id,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if save_payment_method:
            params["setup_future_usage"] = "off_session"

        try:
            intent = self.stripe.PaymentIntent.create(**params)
        except stripe.error.StripeError as e:
            logger.error("Stripe error creating payment intent for plan %s: %s", plan_id, e)
            raise PaymentGatewayError() from e

        logger.info("Created payment intent %s for customer %s", intent.id, customer["id"])
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "amount": amount,
            "currency": self.settings.currency,
        }

    async def create_order_checkout(
        self,
        user: UserContext,
        items: list[dict[str, Any]],
        shipping_address: str | None = None,
        delivery_instructions: str | None = None,
    ) -> dict[str, Any]:
        """Create a payment-mode Checkout Session for a one-time order.

        Each line carries the product id in its Stripe product metadata so the
        paid line items can be mapped back to catalog products.

        Args:
            user: The authenticated customer.
            items: Cart ``{product_id, quantity}`` pairs; repeated products merge.
            shipping_address: Overrides the customer's stored address.
            delivery_instructions: Optional notes for the courier.

        Returns:
            dict: Contains checkout_url and stripe_session_id.

        Raises:
            ValidationError: Unknown, unavailable or out-of-stock products, or
                no shipping address.
            PaymentGatewayError: If Stripe fails or is not configured.
        """
        self._require_stripe()

        quantities: dict[str, int] = {}
        for item in items:
            pid = str(item["product_id"])
            quantities[pid] = quantities.get(pid, 0) + int(item["quantity"])

        rows = (
            self.client.table("products")
            .select("*")
            .in_("id", list(quantities))
            .execute()
        ).data or []
        products = {str(p["id"]): p for p in rows}

        problems: list[str] = []
        for pid, quantity in quantities.items():
            product = products.get(pid)
            if not product:
                problems.append(f"Produto {pid} não encontrado.")
            elif not product.get("is_available", True):
                problems.append(f"{product['name']} não está disponível.")
            elif product["stock_quantity"] < quantity:
                problems.append(
                    f"Estoque insuficiente para {product['name']} "
                    f"(disponível: {product['stock_quantity']})."
                )
        if problems:
            raise ValidationError(
                "Itens inválidos no carrinho",
                details=[{"loc": ["items"], "msg": msg, "type": "invalid_item"} for msg in problems],
            )

        customer = await self.customer_service.get_or_create_customer(user)
        address = shipping_address or customer.get("address")
        if not address:
            raise ValidationError("Endereço de entrega obrigatório")
        stripe_customer_id = await self.customer_service.ensure_stripe_customer(customer)

        line_items = []
        for pid, quantity in quantities.items():
            product = products[pid]
            if product.get("stripe_price_id"):
                line_items.append({"price": product["stripe_price_id"], "quantity": quantity})
            else:
                line_items.append(
                    {
                        "price_data": {
                            "currency": self.settings.currency,
                            "unit_amount": to_cents(product["price"]),
                            "product_data": {
                                "name": product["name"],
                                "metadata": {"product_id": pid},
                            },
                        },
                        "quantity": quantity,
                    }
                )

        frontend = self.settings.frontend_url.rstrip("/")
        try:
            session = self.stripe.checkout.Session.create(
                mode="payment",
                customer=stripe_customer_id,
                client_reference_id=str(customer["id"]),
                line_items=line_items,
                success_url=f"{frontend}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{frontend}/checkout?canceled=true",
                metadata={
                    "customer_id": str(customer["id"]),
                    "shipping_address": address,
                    "delivery_instructions": delivery_instructions or customer.get("delivery_instructions") or "",
                },
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error creating order checkout for customer %s: %s", customer["id"], e)
            raise PaymentGatewayError() from e

        logger.info("Created order checkout %s for customer %s", session.id, customer["id"])
        return {"checkout_url": session.url, "stripe_session_id": session.id}

    def verify_webhook_signature(
        self, payload: bytes, sig_header: str
    ) -> dict[str, Any]:
        """Verify Stripe webhook signature and return event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            ValueError: If signature is invalid or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured. Please set STRIPE_WEBHOOK_SECRET environment variable.")

        try:
            event = self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
            return event
        except stripe.error.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e
