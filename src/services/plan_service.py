"""Subscription plan business logic service."""

import logging
import re
import unicodedata
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import ConflictError, NotFoundError, ValidationError
from src.core.supabase import get_supabase_client
from src.schemas.plan import PlanCreate, PlanUpdate
from src.services.customization import (
    CustomizationResult,
    CustomizationRule,
    CustomizationSelection,
)

logger = logging.getLogger(__name__)


def slugify(value: str) -> str:
    """Turn a plan name into a URL slug ("Cesta Exótica" -> "cesta-exotica")."""
    ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", ascii_value.lower()).strip("-")


class PlanService:
    """Service for managing subscription plans and their customization rules."""

    def __init__(self) -> None:
        """Initialize plan service with Supabase client."""
        self.client = get_supabase_client()

    async def _attach_details(self, plans: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Load fixed items (with product name/type) and rules for each plan."""
        if not plans:
            return []

        plan_ids = [str(p["id"]) for p in plans]

        fixed_rows = (
            self.client.table("plan_fixed_items")
            .select("*")
            .in_("plan_id", plan_ids)
            .execute()
        ).data or []

        rule_rows = (
            self.client.table("plan_customizable_items")
            .select("*")
            .in_("plan_id", plan_ids)
            .execute()
        ).data or []

        product_ids = list({str(item["product_id"]) for item in fixed_rows})
        products: dict[str, dict[str, Any]] = {}
        if product_ids:
            product_rows = (
                self.client.table("products")
                .select("id, name, product_type")
                .in_("id", product_ids)
                .execute()
            ).data or []
            products = {str(p["id"]): p for p in product_rows}

        for plan in plans:
            pid = str(plan["id"])
            plan["fixed_items"] = [
                {
                    **item,
                    "product_name": products.get(str(item["product_id"]), {}).get("name"),
                    "product_type": products.get(str(item["product_id"]), {}).get("product_type"),
                }
                for item in fixed_rows
                if str(item["plan_id"]) == pid
            ]
            plan["customizable_rules"] = [
                rule for rule in rule_rows if str(rule["plan_id"]) == pid
            ]
        return plans

    async def list_plans(self, search: str | None = None) -> list[dict[str, Any]]:
        """List plans ordered by name, each with fixed items and rules.

        Args:
            search: Optional case-insensitive match on name or description.

        Returns:
            list[dict]: Plans with details.
        """
        query = self.client.table("subscription_plans").select("*").order("name")
        if search:
            pattern = f"%{search}%"
            query = query.or_(f"name.ilike.{pattern},description.ilike.{pattern}")

        response = query.execute()
        return await self._attach_details(response.data or [])

    async def get_plan(self, plan_id: UUID | str) -> dict[str, Any] | None:
        """Get a plan with its fixed items and rules.

        Args:
            plan_id: The plan's UUID.

        Returns:
            dict | None: The plan or None if not found.
        """
        response = (
            self.client.table("subscription_plans")
            .select("*")
            .eq("id", str(plan_id))
            .execute()
        )
        if not response.data:
            return None
        return (await self._attach_details(response.data))[0]

    async def get_plan_by_slug(self, slug: str) -> dict[str, Any] | None:
        response = (
            self.client.table("subscription_plans")
            .select("*")
            .eq("slug", slug)
            .execute()
        )
        if not response.data:
            return None
        return (await self._attach_details(response.data))[0]

    async def get_rules(self, plan_id: UUID | str) -> list[CustomizationRule]:
        """Load a plan's customization rules."""
        response = (
            self.client.table("plan_customizable_items")
            .select("*")
            .eq("plan_id", str(plan_id))
            .execute()
        )
        return [CustomizationRule.from_row(row) for row in response.data or []]

    async def _ensure_slug_free(self, slug: str, plan_id: str | None = None) -> None:
        query = self.client.table("subscription_plans").select("id").eq("slug", slug)
        if plan_id:
            query = query.neq("id", plan_id)
        if query.execute().data:
            raise ConflictError("Já existe um plano com este nome")

    async def _ensure_products_exist(self, product_ids: list[str]) -> None:
        if not product_ids:
            return
        found = (
            self.client.table("products")
            .select("id")
            .in_("id", product_ids)
            .execute()
        ).data or []
        missing = set(product_ids) - {str(p["id"]) for p in found}
        if missing:
            raise ValidationError(
                "Produto não encontrado",
                details=[{"loc": ["fixed_items"], "msg": f"Produto {pid} não existe", "type": "not_found"} for pid in sorted(missing)],
            )

    def _replace_items(self, plan_id: str, data: PlanCreate | PlanUpdate) -> None:
        if data.fixed_items is not None:
            self.client.table("plan_fixed_items").delete().eq("plan_id", plan_id).execute()
            if data.fixed_items:
                self.client.table("plan_fixed_items").insert(
                    [
                        {"plan_id": plan_id, "product_id": str(item.product_id), "quantity": item.quantity}
                        for item in data.fixed_items
                    ]
                ).execute()

        if data.customizable_rules is not None:
            self.client.table("plan_customizable_items").delete().eq("plan_id", plan_id).execute()
            if data.customizable_rules:
                self.client.table("plan_customizable_items").insert(
                    [
                        {
                            "plan_id": plan_id,
                            "product_type": rule.product_type,
                            "min_quantity": rule.min_quantity,
                            "max_quantity": rule.max_quantity,
                        }
                        for rule in data.customizable_rules
                    ]
                ).execute()

    async def create_plan(self, data: PlanCreate) -> dict[str, Any]:
        """Create a plan with its fixed items and rules.

        Args:
            data: Plan definition.

        Returns:
            dict: The created plan with details.

        Raises:
            ConflictError: If another plan already uses the same slug.
            ValidationError: If a fixed item references an unknown product.
        """
        slug = slugify(data.name)
        await self._ensure_slug_free(slug)
        await self._ensure_products_exist([str(item.product_id) for item in data.fixed_items])

        response = (
            self.client.table("subscription_plans")
            .insert(
                {
                    "name": data.name,
                    "slug": slug,
                    "description": data.description,
                    "price": str(data.price),
                    "image_url": data.image_url,
                }
            )
            .execute()
        )
        plan = response.data[0]
        self._replace_items(str(plan["id"]), data)

        logger.info("Created plan %s (%s)", plan["id"], slug)
        return await self.get_plan(plan["id"])

    async def update_plan(self, plan_id: UUID, data: PlanUpdate) -> dict[str, Any]:
        """Update plan fields and optionally replace items and rules.

        Raises:
            NotFoundError: If the plan does not exist.
            ConflictError: If the new name collides with another plan's slug.
        """
        existing = await self.get_plan(plan_id)
        if not existing:
            raise NotFoundError("Plano não encontrado")

        # name and price are NOT NULL; description and image_url may be cleared
        update_data: dict[str, Any] = {
            k: v
            for k, v in data.model_dump(
                exclude_unset=True, exclude={"fixed_items", "customizable_rules"}
            ).items()
            if v is not None or k in ("description", "image_url")
        }
        if "price" in update_data:
            update_data["price"] = str(update_data["price"])
        if data.name:
            update_data["slug"] = slugify(data.name)
            await self._ensure_slug_free(update_data["slug"], str(plan_id))
        if data.fixed_items:
            await self._ensure_products_exist([str(item.product_id) for item in data.fixed_items])

        if update_data:
            self.client.table("subscription_plans").update(update_data).eq("id", str(plan_id)).execute()
        self._replace_items(str(plan_id), data)

        logger.info("Updated plan %s", plan_id)
        return await self.get_plan(plan_id)

    async def delete_plan(self, plan_id: UUID) -> None:
        """Delete a plan that no live subscription uses.

        Raises:
            NotFoundError: If the plan does not exist.
            ConflictError: If a non-cancelled subscription references it.
        """
        existing = await self.get_plan(plan_id)
        if not existing:
            raise NotFoundError("Plano não encontrado")

        in_use = (
            self.client.table("user_subscriptions")
            .select("id")
            .eq("plan_id", str(plan_id))
            .neq("status", "cancelled")
            .limit(1)
            .execute()
        )
        if in_use.data:
            raise ConflictError(
                "Não é possível excluir um plano com assinaturas ativas. Cancele as assinaturas primeiro."
            )

        self.client.table("plan_fixed_items").delete().eq("plan_id", str(plan_id)).execute()
        self.client.table("plan_customizable_items").delete().eq("plan_id", str(plan_id)).execute()
        self.client.table("subscription_plans").delete().eq("id", str(plan_id)).execute()
        logger.info("Deleted plan %s", plan_id)

    async def build_selection(
        self,
        plan: dict[str, Any],
        items: list[dict[str, Any]],
        check_stock: bool = False,
    ) -> tuple[CustomizationSelection, dict[str, dict[str, Any]]]:
        """Resolve requested ``{product_id, quantity}`` pairs against the catalog.

        Products must exist, be on sale and belong to a category the plan has
        a rule for. Rule bounds are not checked here.

        Args:
            plan: Plan with ``customizable_rules`` loaded.
            items: Requested products and quantities.
            check_stock: Also require enough stock for each quantity.

        Returns:
            tuple: The selection and the resolved products keyed by id.

        Raises:
            ValidationError: One detail entry per rejected product.
        """
        rules = [CustomizationRule.from_row(r) for r in plan.get("customizable_rules", [])]
        governed = {rule.category for rule in rules}
        selection = CustomizationSelection(rules)

        product_ids = list({str(item["product_id"]) for item in items})
        products: dict[str, dict[str, Any]] = {}
        if product_ids:
            rows = (
                self.client.table("products")
                .select("*")
                .in_("id", product_ids)
                .execute()
            ).data or []
            products = {str(p["id"]): p for p in rows}

        problems: list[str] = []
        for item in items:
            pid = str(item["product_id"])
            product = products.get(pid)
            if not product:
                problems.append(f"Produto {pid} não encontrado.")
                continue
            if not product.get("is_available", True):
                problems.append(f"{product['name']} não está disponível.")
                continue
            if product["product_type"] not in governed:
                problems.append(f"{product['name']} não pode ser adicionado a este plano.")
                continue
            selection.add(pid, product["product_type"], int(item["quantity"]), product["price"])

        if check_stock:
            for entry in selection.items():
                product = products[entry.product_id]
                if product["stock_quantity"] < entry.quantity:
                    problems.append(
                        f"Estoque insuficiente para {product['name']} "
                        f"(disponível: {product['stock_quantity']})."
                    )

        if problems:
            raise ValidationError(
                "Itens inválidos na seleção",
                details=[{"loc": ["items"], "msg": msg, "type": "invalid_item"} for msg in problems],
            )

        return selection, products

    async def validate_selection(
        self, plan_id: UUID, items: list[dict[str, Any]]
    ) -> CustomizationResult:
        """Check a selection against a plan, for interactive feedback.

        Raises:
            NotFoundError: If the plan does not exist.
            ValidationError: If a product is unknown or not allowed.
        """
        plan = await self.get_plan(plan_id)
        if not plan:
            raise NotFoundError("Plano não encontrado")

        selection, _ = await self.build_selection(plan, items)
        return selection.validate()
