#!/usr/bin/env python
"""Script to sync the product catalog and subscription plans to Stripe.

This script:
1. Reads all products and subscription plans from the database
2. Creates Stripe products with a one-time price for each catalog product and
   a recurring price for each plan
3. Creates a new price (archiving the old one) when the amount changed
4. Stores the Stripe product and price IDs back in the database

Usage:
    python scripts/sync_stripe_catalog.py [--products-only | --plans-only]

Requirements:
    - STRIPE_SECRET_KEY environment variable must be set
    - SUPABASE_URL / SUPABASE_SECRET_KEY must point at the target project

Note:
    Checkout works without synced prices (it falls back to inline price
    data), but synced prices keep the Stripe dashboard readable. Stripe
    products created here carry the catalog id in ``metadata.product_id`` or
    ``metadata.plan_id``; order reconciliation relies on ``product_id``.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import stripe

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_settings
from src.core.stripe import configure_stripe, get_stripe, to_cents
from src.core.supabase import get_supabase_client

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Table name -> metadata key carrying the row id on the Stripe product
CATALOG_TABLES = {
    "products": "product_id",
    "subscription_plans": "plan_id",
}


def price_params(table: str, row: dict[str, Any], product_id: str) -> dict[str, Any]:
    """Build Stripe Price.create parameters for a catalog row.

    Plans get a recurring price; products a one-time price.
    """
    settings = get_settings()
    params: dict[str, Any] = {
        "product": product_id,
        "unit_amount": to_cents(row["price"]),
        "currency": settings.currency,
        "metadata": {CATALOG_TABLES[table]: str(row["id"])},
    }
    if table == "subscription_plans":
        params["recurring"] = {"interval": settings.subscription_interval}
    return params


def create_stripe_product_and_price(table: str, row: dict[str, Any]) -> tuple[str, str]:
    """Create a Stripe product and its price for a catalog row.

    Returns:
        tuple: (stripe_product_id, stripe_price_id)
    """
    stripe_client = get_stripe()

    product = stripe_client.Product.create(
        name=row["name"],
        description=(row.get("description") or row["name"])[:500],
        metadata={CATALOG_TABLES[table]: str(row["id"])},
    )
    price = stripe_client.Price.create(**price_params(table, row, product.id))

    logger.info(
        "Created Stripe product %s and price %s for %s %s",
        product.id,
        price.id,
        table,
        row["name"],
    )
    return product.id, price.id


def replace_price(table: str, row: dict[str, Any], product_id: str, old_price_id: str) -> str:
    """Create a new price for an existing Stripe product and archive the old one.

    Stripe prices are immutable, so an amount change always means a new price.
    """
    stripe_client = get_stripe()

    price = stripe_client.Price.create(**price_params(table, row, product_id))
    logger.info("Created new Stripe price %s for %s", price.id, row["name"])

    try:
        stripe_client.Price.modify(old_price_id, active=False)
        logger.info("Archived old price %s", old_price_id)
    except stripe.error.StripeError as e:
        logger.warning("Could not archive old price %s: %s", old_price_id, e)

    return price.id


def sync_row(table: str, row: dict[str, Any]) -> str:
    """Bring one catalog row in line with Stripe.

    Returns:
        str: ``created``, ``price_updated`` or ``skipped``.
    """
    client = get_supabase_client()
    stripe_client = get_stripe()
    product_id = row.get("stripe_product_id")
    price_id = row.get("stripe_price_id")

    if product_id and price_id:
        try:
            stripe_price = stripe_client.Price.retrieve(price_id)
        except stripe.error.InvalidRequestError:
            logger.warning("%s has an unknown Stripe price %s, recreating", row["name"], price_id)
        else:
            if stripe_price.unit_amount == to_cents(row["price"]):
                return "skipped"

            new_price_id = replace_price(table, row, product_id, price_id)
            client.table(table).update({"stripe_price_id": new_price_id}).eq("id", row["id"]).execute()
            return "price_updated"

    product_id, price_id = create_stripe_product_and_price(table, row)
    client.table(table).update(
        {"stripe_product_id": product_id, "stripe_price_id": price_id}
    ).eq("id", row["id"]).execute()
    return "created"


async def sync_catalog_to_stripe(tables: list[str]) -> dict[str, int]:
    """Sync every row of the given catalog tables to Stripe.

    Returns:
        dict: Counts of processed, created, price_updated, skipped and failed rows.
    """
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise ValueError("STRIPE_SECRET_KEY environment variable is not set. Cannot sync to Stripe.")

    configure_stripe()
    client = get_supabase_client()

    mode_label = "TEST" if settings.is_stripe_test_mode else "PRODUCTION"
    logger.info("Running in %s mode", mode_label)

    results = {"processed": 0, "created": 0, "price_updated": 0, "skipped": 0, "failed": 0}

    for table in tables:
        rows = client.table(table).select("*").order("name").execute().data or []
        for row in rows:
            results["processed"] += 1
            try:
                results[sync_row(table, row)] += 1
            except stripe.error.StripeError as e:
                results["failed"] += 1
                logger.error("Failed to sync %s %s (ID: %s): %s", table, row.get("name"), row["id"], e)

    return results


async def main() -> None:
    """Main entry point for the sync script."""
    parser = argparse.ArgumentParser(description="Sync catalog products and plans to Stripe")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--products-only", action="store_true", help="Only sync catalog products")
    group.add_argument("--plans-only", action="store_true", help="Only sync subscription plans")
    args = parser.parse_args()

    tables = list(CATALOG_TABLES)
    if args.products_only:
        tables = ["products"]
    elif args.plans_only:
        tables = ["subscription_plans"]

    logger.info("Starting Stripe catalog synchronization for %s...", ", ".join(tables))

    try:
        results = await sync_catalog_to_stripe(tables)
    except ValueError as e:
        logger.error("Synchronization failed: %s", e)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Stripe synchronization complete!")
    logger.info("Rows processed: %d", results["processed"])
    logger.info("Stripe products created: %d", results["created"])
    logger.info("Prices replaced (amount changed): %d", results["price_updated"])
    logger.info("Skipped (no changes needed): %d", results["skipped"])
    logger.info("Failed: %d", results["failed"])
    logger.info("=" * 60)

    if results["failed"] > 0:
        logger.warning("Some rows failed to sync. Check logs for details.")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
