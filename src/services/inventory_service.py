"""Inventory service: stock levels, adjustments and sale shortfalls."""

import logging
from typing import Any

from supabase import Client

from src.core.config import get_settings
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)

STOCK_STATUSES = ("normal", "low", "critical")


def stock_status(quantity: int, low: int | None = None, critical: int | None = None) -> str:
    """Classify a stock level as ``normal``, ``low`` or ``critical``."""
    settings = get_settings()
    low = settings.low_stock_threshold if low is None else low
    critical = settings.critical_stock_threshold if critical is None else critical

    if quantity <= critical:
        return "critical"
    if quantity <= low:
        return "low"
    return "normal"


class InventoryService:
    """Service for reading and adjusting product stock.

    Stock never goes below zero: every write clamps at zero.
    """

    def __init__(self, supabase_client: Client | None = None):
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def list_inventory(
        self,
        category: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        """List products with their stock status.

        Args:
            category: Optional product_type filter.
            status: Optional stock status filter (normal, low, critical).

        Returns:
            list[dict]: Inventory entries ordered by product name.
        """
        query = (
            self.supabase.table("products")
            .select("id, name, product_type, stock_quantity, is_available")
            .order("name")
        )
        if category:
            query = query.eq("product_type", category)

        result = query.execute()

        items = []
        for product in result.data or []:
            item_status = stock_status(product["stock_quantity"])
            if status and item_status != status:
                continue
            items.append(
                {
                    "id": product["id"],
                    "name": product["name"],
                    "category": product["product_type"],
                    "current_stock": product["stock_quantity"],
                    "is_available": product.get("is_available", True),
                    "status": item_status,
                }
            )
        return items

    def _apply_delta(self, product_id: str, delta: int) -> dict[str, Any] | None:
        """Apply a signed stock delta in one statement, clamped at zero.

        Returns:
            dict | None: The updated product with ``previous_stock``, or None
            if the product is unknown.
        """
        result = self.supabase.rpc(
            "adjust_stock", {"p_product_id": str(product_id), "p_delta": int(delta)}
        ).execute()
        return result.data or None

    async def adjust_stock(self, adjustments: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Apply signed stock deltas.

        Args:
            adjustments: Entries of ``{"id": product_id, "quantity": delta}``.

        Returns:
            list[dict]: Updated product rows. Unknown products are skipped.
        """
        updates = []
        for adjustment in adjustments:
            product_id = str(adjustment["id"])
            updated = self._apply_delta(product_id, int(adjustment["quantity"]))
            if updated is None:
                logger.warning("Stock adjustment skipped, product %s not found", product_id)
                continue
            updates.append(updated)

        logger.info("Applied %d stock adjustments", len(updates))
        return updates

    def report_shortfalls(self, movements: list[dict[str, Any] | None], reference: str) -> int:
        """Log sold quantities that stock could not cover.

        The database clamps stock at zero instead of rejecting a paid sale, so
        the shortfall is only visible here.

        Args:
            movements: ``adjust_stock`` results tagged with ``requested``.
            reference: Payment-session reference, for log correlation.

        Returns:
            int: Number of products that ran short.
        """
        short = 0
        for movement in movements:
            if not movement:
                logger.warning("Stock movement skipped, product not found (reference=%s)", reference)
                continue
            previous = int(movement["previous_stock"])
            requested = int(movement["requested"])
            if requested > previous:
                short += 1
                logger.warning(
                    "Stock for product %s would drop to %d, clamped to 0 (reference=%s)",
                    movement["id"],
                    previous - requested,
                    reference,
                )
        return short


def get_inventory_service() -> InventoryService:
    """Get inventory service instance."""
    return InventoryService()
