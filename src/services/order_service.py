"""Order read and fulfilment service."""

import logging
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.core.supabase import get_supabase_client
from src.schemas.auth import UserContext

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


class OrderService:
    """Service for listing orders and moving them through fulfilment.

    Orders are created only by ReconciliationService.
    """

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()

    async def _attach_items(self, orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not orders:
            return []

        ids = [str(o["id"]) for o in orders]
        items = (
            self.client.table("order_items")
            .select("*")
            .in_("order_id", ids)
            .execute()
        ).data or []

        product_ids = list({str(i["product_id"]) for i in items})
        names: dict[str, str] = {}
        if product_ids:
            rows = (
                self.client.table("products")
                .select("id, name")
                .in_("id", product_ids)
                .execute()
            ).data or []
            names = {str(p["id"]): p["name"] for p in rows}

        for order in orders:
            oid = str(order["id"])
            order["items"] = [
                {**item, "product_name": names.get(str(item["product_id"]))}
                for item in items
                if str(item["order_id"]) == oid
            ]
        return orders

    async def get_order(self, order_id: UUID | str) -> dict[str, Any] | None:
        """Get an order with its items.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .execute()
        )
        if not response.data:
            return None
        return (await self._attach_items(response.data))[0]

    async def get_order_for_user(self, order_id: UUID, user: UserContext) -> dict[str, Any]:
        """Get an order the user owns, or any order for admins.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the user neither owns it nor is an admin.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Pedido não encontrado")
        if not user.is_admin and str(order["customer_id"]) != str(user.user_id):
            raise AuthorizationError("Não autorizado")
        return order

    async def list_for_customer(self, customer_id: UUID) -> list[dict[str, Any]]:
        """Get all orders for a customer, newest first."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("customer_id", str(customer_id))
            .order("created_at", desc=True)
            .execute()
        )
        return await self._attach_items(response.data or [])

    async def list_orders(
        self,
        status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List all orders for administrators."""
        offset = (page - 1) * limit
        query = (
            self.client.table("orders")
            .select("*", count="exact")
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )
        if status:
            query = query.eq("status", status)

        response = query.execute()
        orders = response.data or []
        return {
            "orders": orders,
            "total": response.count if response.count is not None else len(orders),
        }

    async def update_status(self, order_id: UUID, status: str) -> dict[str, Any]:
        """Set an order's fulfilment status.

        Raises:
            NotFoundError: If the order does not exist.
        """
        response = (
            self.client.table("orders")
            .update({"status": status})
            .eq("id", str(order_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Pedido não encontrado")

        logger.info("Order %s status set to %s", order_id, status)
        return (await self._attach_items(response.data))[0]
