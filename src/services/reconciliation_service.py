"""Turning confirmed Stripe payments into orders and subscriptions.

The success page and the Stripe webhook both reconcile the same payment and
may run concurrently. Each materialized row stores its payment-session
reference in a column with a unique constraint. A database function inserts
the row ignoring conflicts and, in the same transaction, writes its items and
decrements stock; exactly one caller creates the row and every other caller
reads the winner's row.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import stripe

from src.api.middleware.error_handler import (
    InvalidPaymentSessionError,
    NotFoundError,
    PaymentGatewayError,
    PaymentNotConfirmedError,
)
from src.core.config import get_settings
from src.core.stripe import from_cents, get_stripe
from src.core.supabase import get_supabase_client
from src.services.customer_service import CustomerService
from src.services.customization import (
    CustomizationRule,
    SelectedItem,
    decode_selection_metadata,
    validate_customization,
)
from src.services.delivery_schedule import delivery_local_date, next_delivery_date
from src.services.inventory_service import InventoryService
from src.services.plan_service import PlanService

logger = logging.getLogger(__name__)

PAID_INTENT_STATUSES = frozenset({"succeeded", "requires_capture"})

# Column holding the payment-session reference, per table
ORDER_REFERENCE_COLUMN = "stripe_payment_intent_id"
SUBSCRIPTION_REFERENCE_COLUMN = "stripe_payment_reference"


def _stripe_id(value: Any) -> str | None:
    """Return the id of a Stripe field that may be an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


class ReconciliationService:
    """Service materializing orders and subscriptions exactly once per payment."""

    def __init__(self) -> None:
        """Initialize reconciliation service with clients."""
        self.client = get_supabase_client()
        self.stripe = get_stripe()
        self.settings = get_settings()
        self.inventory = InventoryService(self.client)
        self.plan_service = PlanService()
        self.customer_service = CustomerService()

    # Reference lookups

    def _find_by_reference(self, table: str, column: str, reference: str) -> dict[str, Any] | None:
        response = (
            self.client.table(table)
            .select("*")
            .eq(column, reference)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def _result(self, kind: str, row: dict[str, Any], reference: str, created: bool) -> dict[str, Any]:
        return {
            "kind": kind,
            "id": row["id"],
            "created": created,
            "reference": reference,
            "needs_review": bool(row.get("needs_review", False)),
            "record": row,
        }

    def _materialize_record(
        self, function: str, record: dict[str, Any], items: list[dict[str, Any]], reference: str
    ) -> dict[str, Any]:
        """Claim ``record`` and write its items and stock movements in one transaction.

        The database function inserts the record unless its payment reference
        is taken. Only when it inserts does it also write ``items`` and
        decrement stock, so a failure part-way leaves nothing behind and the
        next retry starts over.

        Returns:
            dict: ``created``, the ``record`` and the ``stock`` movements.
        """
        response = self.client.rpc(function, {"p_record": record, "p_items": items}).execute()
        outcome = response.data
        if outcome["created"]:
            self.inventory.report_shortfalls(outcome.get("stock") or [], reference)
        return outcome

    # Stripe reads

    def _retrieve_session(self, session_id: str) -> dict[str, Any]:
        try:
            return self.stripe.checkout.Session.retrieve(session_id)
        except stripe.error.InvalidRequestError as e:
            logger.warning("Unknown checkout session %s: %s", session_id, e)
            raise InvalidPaymentSessionError() from e
        except stripe.error.StripeError as e:
            logger.error("Stripe error retrieving checkout session %s: %s", session_id, e)
            raise PaymentGatewayError() from e

    def _retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        try:
            return self.stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.error.InvalidRequestError as e:
            logger.warning("Unknown payment intent %s: %s", payment_intent_id, e)
            raise InvalidPaymentSessionError() from e
        except stripe.error.StripeError as e:
            logger.error("Stripe error retrieving payment intent %s: %s", payment_intent_id, e)
            raise PaymentGatewayError() from e

    def _list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        try:
            line_items = self.stripe.checkout.Session.list_line_items(
                session_id, limit=100, expand=["data.price.product"]
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error listing line items for %s: %s", session_id, e)
            raise PaymentGatewayError() from e
        return list(line_items["data"])

    # Order reconciliation

    def _resolve_line_item_products(
        self, line_items: list[dict[str, Any]], reference: str
    ) -> tuple[list[tuple[dict[str, Any], dict[str, Any]]], list[str]]:
        """Map paid line items to catalog products.

        Lines carry the catalog id in their Stripe product metadata; lines
        priced from a synced Stripe product fall back to its Stripe product id.

        Returns:
            tuple: (line item, product) pairs and descriptions of skipped lines.
        """
        by_id: dict[str, str] = {}
        by_stripe_product: dict[str, str] = {}
        for line in line_items:
            stripe_product = (line.get("price") or {}).get("product") or {}
            if isinstance(stripe_product, str):
                by_stripe_product[stripe_product] = line["id"]
                continue
            product_id = (stripe_product.get("metadata") or {}).get("product_id")
            if product_id:
                by_id[line["id"]] = product_id
            elif stripe_product.get("id"):
                by_stripe_product[stripe_product["id"]] = line["id"]

        products: dict[str, dict[str, Any]] = {}
        if by_id:
            rows = (
                self.client.table("products")
                .select("*")
                .in_("id", list(set(by_id.values())))
                .execute()
            ).data or []
            products.update({str(p["id"]): p for p in rows})

        stripe_products: dict[str, dict[str, Any]] = {}
        if by_stripe_product:
            rows = (
                self.client.table("products")
                .select("*")
                .in_("stripe_product_id", list(by_stripe_product))
                .execute()
            ).data or []
            stripe_products = {p["stripe_product_id"]: p for p in rows}

        resolved = []
        skipped = []
        for line in line_items:
            product = None
            if line["id"] in by_id:
                product = products.get(str(by_id[line["id"]]))
            else:
                stripe_product_id = _stripe_id((line.get("price") or {}).get("product"))
                product = stripe_products.get(stripe_product_id) if stripe_product_id else None

            if product is None:
                logger.error(
                    "Skipping line item %s (%s): product not found (reference=%s)",
                    line["id"],
                    line.get("description"),
                    reference,
                )
                skipped.append(line.get("description") or line["id"])
                continue
            resolved.append((line, product))

        return resolved, skipped

    async def reconcile_order(self, session_id: str) -> dict[str, Any]:
        """Materialize the order paid through a payment-mode Checkout Session.

        Safe to call any number of times, concurrently, for the same session.

        Args:
            session_id: Stripe Checkout Session id.

        Returns:
            dict: ``kind``, ``id``, ``created``, ``reference``, ``needs_review``
            and the order ``record``.

        Raises:
            InvalidPaymentSessionError: Unknown session or not an order session.
            PaymentNotConfirmedError: Stripe has not reported the session paid.
            PaymentGatewayError: Stripe failed or was unreachable.
        """
        existing = self._find_by_reference("orders", ORDER_REFERENCE_COLUMN, session_id)
        if existing:
            return self._result("order", existing, session_id, created=False)

        session = self._retrieve_session(session_id)
        if session.get("mode") != "payment":
            raise InvalidPaymentSessionError("Sessão não corresponde a um pedido")
        if session.get("payment_status") != "paid":
            logger.info(
                "Order session %s not paid (payment_status=%s)",
                session_id,
                session.get("payment_status"),
            )
            raise PaymentNotConfirmedError()

        metadata = session.get("metadata") or {}
        customer_id = metadata.get("customer_id") or session.get("client_reference_id")
        if not customer_id:
            logger.error("Paid order session %s has no customer reference", session_id)
            raise InvalidPaymentSessionError("Sessão de pagamento sem cliente associado")

        line_items = self._list_line_items(session_id)
        resolved, skipped = self._resolve_line_item_products(line_items, session_id)

        outcome = self._materialize_record(
            "materialize_order",
            {
                "customer_id": customer_id,
                "status": "processing",
                "payment_status": "paid",
                "total_amount": from_cents(session.get("amount_total")),
                "shipping_address": metadata.get("shipping_address") or "",
                "delivery_instructions": metadata.get("delivery_instructions") or None,
                ORDER_REFERENCE_COLUMN: session_id,
                "needs_review": bool(skipped),
            },
            [
                {
                    "product_id": str(product["id"]),
                    "quantity": int(line["quantity"]),
                    "unit_price": from_cents((line.get("price") or {}).get("unit_amount")),
                    "total_price": from_cents(line.get("amount_total")),
                }
                for line, product in resolved
            ],
            session_id,
        )
        order = outcome["record"]
        if not outcome["created"]:
            logger.info("Order for %s already materialized by a concurrent request", session_id)
            return self._result("order", order, session_id, created=False)

        if skipped:
            logger.error(
                "Order %s created with %d unmatched line items, flagged for review (reference=%s): %s",
                order["id"],
                len(skipped),
                session_id,
                skipped,
            )
        logger.info("Materialized order %s from %s", order["id"], session_id)
        return self._result("order", order, session_id, created=True)

    # Subscription reconciliation

    async def _materialize_subscription(
        self,
        reference: str,
        metadata: dict[str, Any],
        plan_id: str | None,
        customer_id: str | None,
        stripe_subscription_id: str | None,
    ) -> dict[str, Any]:
        """Claim the subscription row for ``reference`` and create its items."""
        metadata_plan_id = metadata.get("plan_id")
        if metadata_plan_id and plan_id and str(plan_id) != metadata_plan_id:
            logger.warning(
                "Plan %s from the request differs from plan %s paid for (reference=%s)",
                plan_id,
                metadata_plan_id,
                reference,
            )
        plan_id = metadata_plan_id or plan_id
        if not plan_id or not customer_id:
            logger.error("Paid subscription %s lacks plan or customer reference", reference)
            raise InvalidPaymentSessionError("Sessão de pagamento sem plano ou cliente associado")

        plan = await self.plan_service.get_plan(plan_id)
        if not plan:
            logger.error("Plan %s not found for paid subscription (reference=%s)", plan_id, reference)
            raise NotFoundError("Plano não encontrado")

        unreadable = False
        try:
            custom_items = decode_selection_metadata(metadata)
        except ValueError:
            logger.error("Unreadable custom_items metadata (reference=%s)", reference)
            custom_items = []
            unreadable = True

        requested = [
            (str(item["product_id"]), int(item["quantity"]), True)
            for item in plan.get("fixed_items", [])
        ] + [
            (product_id, quantity, False)
            for product_id, quantity in custom_items
            if quantity > 0
        ]

        product_ids = list({pid for pid, _, _ in requested})
        products: dict[str, dict[str, Any]] = {}
        if product_ids:
            rows = (
                self.client.table("products")
                .select("*")
                .in_("id", product_ids)
                .execute()
            ).data or []
            products = {str(p["id"]): p for p in rows}

        items = []
        skipped = []
        for pid, quantity, is_fixed in requested:
            if pid not in products:
                logger.error("Skipping subscription item: product %s not found (reference=%s)", pid, reference)
                skipped.append(pid)
                continue
            items.append((pid, quantity, is_fixed))

        rules = [CustomizationRule.from_row(r) for r in plan.get("customizable_rules", [])]
        check = validate_customization(
            rules,
            [
                SelectedItem(product_id=pid, category=products[pid]["product_type"], quantity=qty)
                for pid, qty, is_fixed in items
                if not is_fixed
            ],
        )
        if not check.valid:
            logger.error(
                "Paid selection violates plan %s rules (reference=%s): %s",
                plan_id,
                reference,
                check.errors,
            )

        now = datetime.now(timezone.utc)
        outcome = self._materialize_record(
            "materialize_subscription",
            {
                "customer_id": customer_id,
                "plan_id": str(plan["id"]),
                "plan_name": plan["name"],
                "status": "active",
                "start_date": delivery_local_date(now).isoformat(),
                "next_delivery_date": next_delivery_date(now).isoformat(),
                "stripe_subscription_id": stripe_subscription_id,
                SUBSCRIPTION_REFERENCE_COLUMN: reference,
                "status_updated_at": now.isoformat(),
                "needs_review": bool(skipped) or unreadable or not check.valid,
            },
            [
                {"product_id": pid, "quantity": quantity, "is_fixed": is_fixed}
                for pid, quantity, is_fixed in items
            ],
            reference,
        )
        subscription = outcome["record"]
        if not outcome["created"]:
            logger.info("Subscription for %s already materialized by a concurrent request", reference)
            return self._result("subscription", subscription, reference, created=False)

        logger.info("Materialized subscription %s from %s", subscription["id"], reference)
        return self._result("subscription", subscription, reference, created=True)

    async def reconcile_subscription(self, session_id: str, plan_id: str | None = None) -> dict[str, Any]:
        """Materialize the subscription paid through a subscription Checkout Session.

        The plan and selection are read from the session metadata; ``plan_id``
        is only a fallback for sessions without it.

        Raises:
            InvalidPaymentSessionError: Unknown session or not a subscription session.
            PaymentNotConfirmedError: Stripe has not reported the session paid.
            PaymentGatewayError: Stripe failed or was unreachable.
        """
        existing = self._find_by_reference("user_subscriptions", SUBSCRIPTION_REFERENCE_COLUMN, session_id)
        if existing:
            return self._result("subscription", existing, session_id, created=False)

        session = self._retrieve_session(session_id)
        if session.get("mode") != "subscription":
            raise InvalidPaymentSessionError("Sessão não corresponde a uma assinatura")
        if session.get("payment_status") != "paid":
            logger.info(
                "Subscription session %s not paid (payment_status=%s)",
                session_id,
                session.get("payment_status"),
            )
            raise PaymentNotConfirmedError()

        metadata = dict(session.get("metadata") or {})
        return await self._materialize_subscription(
            reference=session_id,
            metadata=metadata,
            plan_id=plan_id,
            customer_id=metadata.get("customer_id") or session.get("client_reference_id"),
            stripe_subscription_id=_stripe_id(session.get("subscription")),
        )

    async def reconcile_subscription_payment_intent(
        self, payment_intent_id: str, plan_id: str | None = None
    ) -> dict[str, Any]:
        """Materialize the subscription paid through a PaymentIntent.

        If the customer asked to keep the card, it becomes the default payment
        method of their Stripe customer. That step runs only for the caller
        that created the subscription.

        Raises:
            InvalidPaymentSessionError: Unknown payment intent.
            PaymentNotConfirmedError: The intent has not succeeded.
            PaymentGatewayError: Stripe failed or was unreachable.
        """
        existing = self._find_by_reference(
            "user_subscriptions", SUBSCRIPTION_REFERENCE_COLUMN, payment_intent_id
        )
        if existing:
            return self._result("subscription", existing, payment_intent_id, created=False)

        intent = self._retrieve_payment_intent(payment_intent_id)
        if intent.get("status") not in PAID_INTENT_STATUSES:
            logger.info("Payment intent %s not paid (status=%s)", payment_intent_id, intent.get("status"))
            raise PaymentNotConfirmedError()

        metadata = dict(intent.get("metadata") or {})
        customer_id = metadata.get("customer_id")
        result = await self._materialize_subscription(
            reference=payment_intent_id,
            metadata=metadata,
            plan_id=plan_id,
            customer_id=customer_id,
            stripe_subscription_id=None,
        )

        payment_method_id = _stripe_id(intent.get("payment_method"))
        if result["created"] and metadata.get("save_payment_method") == "true" and payment_method_id:
            try:
                await self.customer_service.save_payment_method(customer_id, payment_method_id)
            except PaymentGatewayError:
                # The subscription exists; the card can be added from the billing page
                logger.error(
                    "Could not save payment method for subscription %s (reference=%s)",
                    result["id"],
                    payment_intent_id,
                )

        return result

    async def handle_checkout_event(self, event: dict[str, Any]) -> dict[str, Any] | None:
        """Reconcile from a checkout or payment intent webhook event.

        Returns:
            dict | None: The reconciliation result, or None when the payment
            is not confirmed yet or the object is not ours to reconcile.
        """
        obj = event["data"]["object"]
        try:
            if event["type"] == "payment_intent.succeeded":
                if not (obj.get("metadata") or {}).get("plan_id"):
                    return None
                return await self.reconcile_subscription_payment_intent(obj["id"])
            if obj.get("mode") == "subscription":
                return await self.reconcile_subscription(obj["id"])
            if obj.get("mode") == "payment":
                return await self.reconcile_order(obj["id"])
        except PaymentNotConfirmedError:
            # Async payment methods complete later with checkout.session.async_payment_succeeded
            logger.info("Event %s for %s: payment not confirmed yet", event.get("id"), obj.get("id"))
            return None

        logger.info("Ignoring %s for %s with mode %s", event["type"], obj.get("id"), obj.get("mode"))
        return None
