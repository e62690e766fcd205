"""Unit tests for ProductService."""

from datetime import datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from src.services.product_service import ProductService


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Create a mock Supabase client."""
    return MagicMock()


@pytest.fixture
def sample_product() -> dict:
    """Create a sample product."""
    return {
        "id": str(uuid4()),
        "name": "Manga Palmer",
        "description": "Manga doce, sem fibras.",
        "price": "7.90",
        "image_url": None,
        "product_type": "exotic",
        "stock_quantity": 12,
        "is_available": True,
        "stripe_product_id": None,
        "stripe_price_id": None,
        "created_at": datetime.now().isoformat(),
        "updated_at": datetime.now().isoformat(),
    }


class TestCreateProduct:
    """Tests for create_product method."""

    @pytest.mark.asyncio
    async def test_create_product_success(
        self, mock_supabase: MagicMock, sample_product: dict
    ) -> None:
        """Test successful product creation."""
        mock_supabase.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[sample_product]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.create_product(
            {"name": "Manga Palmer", "price": "7.90", "product_type": "exotic", "stock_quantity": 12}
        )

        assert result["id"] == sample_product["id"]
        mock_supabase.table.assert_called_with("products")
        inserted = mock_supabase.table.return_value.insert.call_args[0][0]
        assert inserted["product_type"] == "exotic"

    @pytest.mark.asyncio
    async def test_create_product_empty_result_raises(self, mock_supabase: MagicMock) -> None:
        """Test creation failure when no row comes back."""
        mock_supabase.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])

        service = ProductService(supabase_client=mock_supabase)

        with pytest.raises(Exception, match="Failed to create product"):
            await service.create_product({"name": "Manga", "price": "7.90", "product_type": "exotic"})


class TestGetProduct:
    """Tests for get_product and get_products_by_ids."""

    @pytest.mark.asyncio
    async def test_get_product_found(self, mock_supabase: MagicMock, sample_product: dict) -> None:
        mock_supabase.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[sample_product]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.get_product(sample_product["id"])

        assert result == sample_product

    @pytest.mark.asyncio
    async def test_get_product_not_found(self, mock_supabase: MagicMock) -> None:
        mock_supabase.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[]
        )

        service = ProductService(supabase_client=mock_supabase)

        assert await service.get_product(str(uuid4())) is None

    @pytest.mark.asyncio
    async def test_get_products_by_ids_keys_by_id(
        self, mock_supabase: MagicMock, sample_product: dict
    ) -> None:
        mock_supabase.table.return_value.select.return_value.in_.return_value.execute.return_value = MagicMock(
            data=[sample_product]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.get_products_by_ids([sample_product["id"], str(uuid4())])

        assert list(result) == [sample_product["id"]]

    @pytest.mark.asyncio
    async def test_get_products_by_ids_empty_skips_query(self, mock_supabase: MagicMock) -> None:
        service = ProductService(supabase_client=mock_supabase)

        assert await service.get_products_by_ids([]) == {}
        mock_supabase.table.assert_not_called()


class TestUpdateProduct:
    """Tests for update_product and disable_product."""

    @pytest.mark.asyncio
    async def test_update_drops_none_values(
        self, mock_supabase: MagicMock, sample_product: dict
    ) -> None:
        mock_supabase.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{**sample_product, "price": "8.50"}]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.update_product(sample_product["id"], {"price": "8.50", "description": None})

        assert result["price"] == "8.50"
        mock_supabase.table.return_value.update.assert_called_once_with({"price": "8.50"})

    @pytest.mark.asyncio
    async def test_update_without_changes_returns_current(
        self, mock_supabase: MagicMock, sample_product: dict
    ) -> None:
        mock_supabase.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[sample_product]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.update_product(sample_product["id"], {})

        assert result == sample_product
        mock_supabase.table.return_value.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_disable_product_keeps_row(
        self, mock_supabase: MagicMock, sample_product: dict
    ) -> None:
        """Disabling flips is_available and never deletes."""
        mock_supabase.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{**sample_product, "is_available": False}]
        )

        service = ProductService(supabase_client=mock_supabase)
        result = await service.disable_product(sample_product["id"])

        assert result["is_available"] is False
        mock_supabase.table.return_value.update.assert_called_once_with({"is_available": False})
        mock_supabase.table.return_value.delete.assert_not_called()


class TestListProducts:
    """Tests for list_products."""

    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, fake_db) -> None:
        fake_db.seed(
            "products",
            {"name": "Maçã", "product_type": "normal", "price": "3.50", "stock_quantity": 50, "is_available": True},
            {"name": "Manga", "product_type": "exotic", "price": "7.90", "stock_quantity": 12, "is_available": True},
            {"name": "Pitaya", "product_type": "exotic", "price": "12.90", "stock_quantity": 0, "is_available": False},
        )

        service = ProductService(supabase_client=fake_db)

        exotic = await service.list_products(product_type="exotic")
        assert exotic["total"] == 2

        on_sale = await service.list_products(product_type="exotic", available_only=True)
        assert [p["name"] for p in on_sale["products"]] == ["Manga"]

        searched = await service.list_products(search="pita")
        assert [p["name"] for p in searched["products"]] == ["Pitaya"]

        first_page = await service.list_products(page=1, limit=2)
        assert first_page["total"] == 3
        assert len(first_page["products"]) == 2
        assert first_page["page"] == 1
