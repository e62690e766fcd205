"""Unit tests for PlanService."""

from uuid import UUID

import pytest

from src.api.middleware.error_handler import ConflictError, NotFoundError, ValidationError
from src.schemas.plan import CustomizationRuleInput, FixedItemInput, PlanCreate, PlanUpdate
from src.services.plan_service import PlanService, slugify
from tests.fakes import CUSTOMER_ID, FakeSupabase

APPLE_ID = "110e8400-e29b-41d4-a716-446655440000"
MANGO_ID = "220e8400-e29b-41d4-a716-446655440000"
BANANA_ID = "330e8400-e29b-41d4-a716-446655440000"
PLAN_ID = "880e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def service(fake_db: FakeSupabase) -> PlanService:
    fake_db.seed(
        "products",
        {"id": APPLE_ID, "name": "Maçã", "product_type": "normal", "price": "3.50", "stock_quantity": 50, "is_available": True},
        {"id": MANGO_ID, "name": "Manga", "product_type": "exotic", "price": "7.90", "stock_quantity": 12, "is_available": True},
        {"id": BANANA_ID, "name": "Banana", "product_type": "normal", "price": "2.00", "stock_quantity": 30, "is_available": False},
    )
    return PlanService()


@pytest.fixture
def plan(fake_db: FakeSupabase) -> dict:
    """A plan with one fixed apple pair, 1-3 exotic and up to 2 normal fruits."""
    row = fake_db.seed(
        "subscription_plans",
        {"id": PLAN_ID, "name": "Cesta Tropical", "slug": "cesta-tropical", "price": "89.90"},
    )[0]
    fake_db.seed("plan_fixed_items", {"plan_id": PLAN_ID, "product_id": APPLE_ID, "quantity": 2})
    fake_db.seed(
        "plan_customizable_items",
        {"plan_id": PLAN_ID, "product_type": "exotic", "min_quantity": 1, "max_quantity": 3},
        {"plan_id": PLAN_ID, "product_type": "normal", "min_quantity": 0, "max_quantity": 2},
    )
    return row


class TestSlugify:
    def test_strips_accents_and_punctuation(self) -> None:
        assert slugify("Cesta Exótica") == "cesta-exotica"
        assert slugify("  Família & Amigos!! ") == "familia-amigos"


class TestGetPlan:
    """Tests for get_plan and list_plans."""

    @pytest.mark.asyncio
    async def test_attaches_fixed_items_and_rules(self, service, plan) -> None:
        result = await service.get_plan(UUID(PLAN_ID))

        assert result["fixed_items"][0]["product_name"] == "Maçã"
        assert result["fixed_items"][0]["quantity"] == 2
        assert {r["product_type"] for r in result["customizable_rules"]} == {"exotic", "normal"}

    @pytest.mark.asyncio
    async def test_missing_plan(self, service) -> None:
        assert await service.get_plan(UUID(PLAN_ID)) is None

    @pytest.mark.asyncio
    async def test_get_by_slug(self, service, plan) -> None:
        result = await service.get_plan_by_slug("cesta-tropical")

        assert str(result["id"]) == PLAN_ID

    @pytest.mark.asyncio
    async def test_list_search(self, service, plan) -> None:
        assert len(await service.list_plans(search="tropical")) == 1
        assert await service.list_plans(search="citrus") == []

    @pytest.mark.asyncio
    async def test_get_rules(self, service, plan) -> None:
        rules = await service.get_rules(PLAN_ID)

        assert {(r.category, r.min_quantity, r.max_quantity) for r in rules} == {
            ("exotic", 1, 3),
            ("normal", 0, 2),
        }


class TestCreatePlan:
    """Tests for create_plan."""

    @pytest.mark.asyncio
    async def test_creates_with_items_and_rules(self, service, fake_db) -> None:
        data = PlanCreate(
            name="Cesta Exótica",
            price="119.90",
            fixed_items=[FixedItemInput(product_id=APPLE_ID, quantity=1)],
            customizable_rules=[CustomizationRuleInput(product_type="exotic", min_quantity=2, max_quantity=4)],
        )

        result = await service.create_plan(data)

        assert result["slug"] == "cesta-exotica"
        assert result["price"] == "119.90"
        assert len(result["fixed_items"]) == 1
        assert result["customizable_rules"][0]["max_quantity"] == 4

    @pytest.mark.asyncio
    async def test_slug_conflict(self, service, plan) -> None:
        with pytest.raises(ConflictError):
            await service.create_plan(PlanCreate(name="Cesta Tropical", price="10.00"))

    @pytest.mark.asyncio
    async def test_unknown_fixed_product(self, service, fake_db) -> None:
        data = PlanCreate(
            name="Cesta Nova",
            price="50.00",
            fixed_items=[FixedItemInput(product_id="000e8400-e29b-41d4-a716-446655440000", quantity=1)],
        )

        with pytest.raises(ValidationError):
            await service.create_plan(data)

        assert fake_db.rows("subscription_plans") == []


class TestUpdatePlan:
    """Tests for update_plan."""

    @pytest.mark.asyncio
    async def test_rename_updates_slug(self, service, plan, fake_db) -> None:
        result = await service.update_plan(UUID(PLAN_ID), PlanUpdate(name="Cesta Tropical Plus"))

        assert result["slug"] == "cesta-tropical-plus"

    @pytest.mark.asyncio
    async def test_replaces_rules_only_when_given(self, service, plan, fake_db) -> None:
        await service.update_plan(UUID(PLAN_ID), PlanUpdate(price="99.90"))
        assert len(fake_db.rows("plan_customizable_items")) == 2

        await service.update_plan(
            UUID(PLAN_ID),
            PlanUpdate(customizable_rules=[CustomizationRuleInput(product_type="exotic", min_quantity=0, max_quantity=1)]),
        )
        rules = fake_db.rows("plan_customizable_items")
        assert [(r["product_type"], r["max_quantity"]) for r in rules] == [("exotic", 1)]
        assert len(fake_db.rows("plan_fixed_items")) == 1

    @pytest.mark.asyncio
    async def test_unknown_plan(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.update_plan(UUID(PLAN_ID), PlanUpdate(price="10.00"))


class TestDeletePlan:
    """Tests for delete_plan."""

    @pytest.mark.asyncio
    async def test_deletes_plan_and_children(self, service, plan, fake_db) -> None:
        fake_db.seed(
            "user_subscriptions",
            {"customer_id": CUSTOMER_ID, "plan_id": PLAN_ID, "status": "cancelled"},
        )

        await service.delete_plan(UUID(PLAN_ID))

        assert fake_db.rows("subscription_plans") == []
        assert fake_db.rows("plan_fixed_items") == []
        assert fake_db.rows("plan_customizable_items") == []

    @pytest.mark.asyncio
    async def test_refuses_while_subscriptions_are_live(self, service, plan, fake_db) -> None:
        fake_db.seed(
            "user_subscriptions",
            {"customer_id": CUSTOMER_ID, "plan_id": PLAN_ID, "status": "paused"},
        )

        with pytest.raises(ConflictError):
            await service.delete_plan(UUID(PLAN_ID))

        assert len(fake_db.rows("subscription_plans")) == 1


class TestValidateSelection:
    """Tests for validate_selection and build_selection."""

    @pytest.mark.asyncio
    async def test_valid_selection(self, service, plan) -> None:
        result = await service.validate_selection(
            UUID(PLAN_ID),
            [{"product_id": MANGO_ID, "quantity": 2}, {"product_id": APPLE_ID, "quantity": 1}],
        )

        assert result.valid is True
        assert result.counts == {"exotic": 2, "normal": 1}

    @pytest.mark.asyncio
    async def test_reports_each_violated_rule(self, service, plan) -> None:
        result = await service.validate_selection(
            UUID(PLAN_ID), [{"product_id": APPLE_ID, "quantity": 3}]
        )

        assert result.valid is False
        assert result.errors == [
            "Você precisa selecionar pelo menos 1 frutas do tipo exótica (exotic).",
            "Você pode selecionar no máximo 2 frutas do tipo comum (normal).",
        ]

    @pytest.mark.asyncio
    async def test_unavailable_product_is_rejected(self, service, plan) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.validate_selection(
                UUID(PLAN_ID), [{"product_id": BANANA_ID, "quantity": 1}]
            )

        assert exc_info.value.details[0]["msg"] == "Banana não está disponível."

    @pytest.mark.asyncio
    async def test_unknown_plan(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.validate_selection(UUID(PLAN_ID), [])
