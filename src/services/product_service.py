"""Product service for catalog CRUD operations."""

import logging
from typing import Any
from uuid import UUID

from supabase import Client

from src.core.supabase import get_supabase_client
from src.models.product import Product, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


class ProductService:
    """Service for product operations."""

    def __init__(self, supabase_client: Client | None = None):
        """Initialize product service.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def create_product(self, data: ProductCreate) -> Product:
        """Create a new product.

        Args:
            data: Product creation data.

        Returns:
            Product: Created product.

        Raises:
            Exception: If creation fails.
        """
        try:
            result = self.supabase.table("products").insert(dict(data)).execute()

            if not result.data:
                raise Exception("Failed to create product")

            product = result.data[0]
            logger.info("Created product %s", product["id"])
            return product

        except Exception as e:
            logger.error("Failed to create product: %s", e)
            raise

    async def get_product(self, product_id: UUID | str) -> Product | None:
        """Get a product by ID.

        Args:
            product_id: Product UUID.

        Returns:
            Product or None if not found.
        """
        result = (
            self.supabase.table("products")
            .select("*")
            .eq("id", str(product_id))
            .execute()
        )

        if result.data:
            return result.data[0]
        return None

    async def get_products_by_ids(self, product_ids: list[str]) -> dict[str, Product]:
        """Fetch several products at once, keyed by id.

        Unknown ids are absent from the result.
        """
        if not product_ids:
            return {}

        result = (
            self.supabase.table("products")
            .select("*")
            .in_("id", [str(pid) for pid in product_ids])
            .execute()
        )

        return {str(p["id"]): p for p in result.data or []}

    async def update_product(
        self,
        product_id: UUID,
        data: ProductUpdate,
    ) -> Product | None:
        """Update a product.

        Args:
            product_id: Product UUID.
            data: Update data.

        Returns:
            Product or None if not found.
        """
        update_data = {k: v for k, v in data.items() if v is not None}

        if not update_data:
            return await self.get_product(product_id)

        result = (
            self.supabase.table("products")
            .update(update_data)
            .eq("id", str(product_id))
            .execute()
        )

        if not result.data:
            return None

        logger.info("Updated product %s", product_id)
        return result.data[0]

    async def disable_product(self, product_id: UUID) -> Product | None:
        """Withdraw a product from sale.

        Products are never hard-deleted because order and subscription items
        keep referencing them.
        """
        return await self.update_product(product_id, {"is_available": False})

    async def list_products(
        self,
        product_type: str | None = None,
        available_only: bool = False,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        """List products with optional filtering and pagination.

        Args:
            product_type: Filter by category tag.
            available_only: Only include products on sale.
            search: Case-insensitive match on name or description.
            page: 1-based page number.
            limit: Page size.

        Returns:
            dict: ``products``, ``total``, ``page`` and ``limit``.
        """
        offset = (page - 1) * limit
        query = (
            self.supabase.table("products")
            .select("*", count="exact")
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
        )

        if product_type:
            query = query.eq("product_type", product_type)

        if available_only:
            query = query.eq("is_available", True)

        if search:
            pattern = f"%{search}%"
            query = query.or_(f"name.ilike.{pattern},description.ilike.{pattern}")

        result = query.execute()
        products = result.data or []

        return {
            "products": products,
            "total": result.count if result.count is not None else len(products),
            "page": page,
            "limit": limit,
        }


def get_product_service() -> ProductService:
    """Get product service instance.

    Returns:
        ProductService: Product service instance.
    """
    return ProductService()
