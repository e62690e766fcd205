"""Plan customization rules.

A subscription plan carries one rule per product category bounding how many
units of that category the customer may pick on top of the plan's fixed
items. ``validate_customization`` is the single implementation of that check:
the interactive validation endpoint and checkout submission both call it.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

logger = logging.getLogger(__name__)

# Portuguese labels shown to customers for each category tag
CATEGORY_LABELS: dict[str, str] = {
    "normal": "comum",
    "exotic": "exótica",
    "individual": "avulsa",
}


def category_label(category: str) -> str:
    """Return the customer-facing label for a category tag."""
    return CATEGORY_LABELS.get(category, category)


# Stripe caps each metadata value at 500 characters; a selection is spread
# over custom_items_0, custom_items_1, ... as comma-separated id:quantity pairs
METADATA_VALUE_LIMIT = 500
CUSTOM_ITEMS_KEY_PREFIX = "custom_items_"


def encode_selection_metadata(pairs: Iterable[tuple[str, int]]) -> dict[str, str]:
    """Pack ``(product_id, quantity)`` pairs into numbered metadata values."""
    chunks: list[list[str]] = []
    size = 0
    for product_id, quantity in pairs:
        token = f"{product_id}:{int(quantity)}"
        if not chunks or size + 1 + len(token) > METADATA_VALUE_LIMIT:
            chunks.append([token])
            size = len(token)
        else:
            chunks[-1].append(token)
            size += 1 + len(token)
    return {f"{CUSTOM_ITEMS_KEY_PREFIX}{i}": ",".join(chunk) for i, chunk in enumerate(chunks)}


def decode_selection_metadata(metadata: dict[str, Any]) -> list[tuple[str, int]]:
    """Read back the pairs written by ``encode_selection_metadata``.

    Raises:
        ValueError: If a value is not a list of ``id:quantity`` pairs.
    """
    prefix_length = len(CUSTOM_ITEMS_KEY_PREFIX)
    indexes = sorted(
        int(key[prefix_length:])
        for key in metadata
        if key.startswith(CUSTOM_ITEMS_KEY_PREFIX) and key[prefix_length:].isdigit()
    )
    pairs = []
    for index in indexes:
        value = metadata[f"{CUSTOM_ITEMS_KEY_PREFIX}{index}"] or ""
        for token in filter(None, value.split(",")):
            product_id, sep, quantity = token.partition(":")
            if not sep or not product_id:
                raise ValueError(f"malformed selection entry {token!r}")
            pairs.append((product_id, int(quantity)))
    return pairs


@dataclass(frozen=True)
class CustomizationRule:
    """Inclusive quantity bound for one product category of a plan."""

    category: str
    min_quantity: int
    max_quantity: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CustomizationRule":
        """Build a rule from a plan_customizable_items row."""
        return cls(
            category=row["product_type"],
            min_quantity=int(row["min_quantity"]),
            max_quantity=int(row["max_quantity"]),
        )


@dataclass(frozen=True)
class SelectedItem:
    """One customer-selected product with its category and quantity."""

    product_id: str
    category: str
    quantity: int


@dataclass(frozen=True)
class CustomizationResult:
    """Outcome of a rule check: ``errors`` has one message per violated rule."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)


def count_by_category(items: Iterable[SelectedItem]) -> dict[str, int]:
    """Sum selected quantities per category, ignoring non-positive quantities."""
    counts: dict[str, int] = {}
    for item in items:
        if item.quantity <= 0:
            continue
        counts[item.category] = counts.get(item.category, 0) + item.quantity
    return counts


def validate_customization(
    rules: Iterable[CustomizationRule],
    items: Iterable[SelectedItem],
) -> CustomizationResult:
    """Check a selection against every rule of a plan.

    Only the customer-selected items count; fixed plan items are outside the
    bounds. A category with no selected items counts as zero.

    Args:
        rules: The plan's customization rules.
        items: The customer's selection.

    Returns:
        CustomizationResult: ``valid`` is True iff every rule satisfies
        ``min_quantity <= count <= max_quantity``.
    """
    counts = count_by_category(items)
    errors: list[str] = []

    for rule in rules:
        count = counts.get(rule.category, 0)
        label = category_label(rule.category)

        if count < rule.min_quantity:
            errors.append(
                f"Você precisa selecionar pelo menos {rule.min_quantity} frutas "
                f"do tipo {label} ({rule.category})."
            )
        elif count > rule.max_quantity:
            errors.append(
                f"Você pode selecionar no máximo {rule.max_quantity} frutas "
                f"do tipo {label} ({rule.category})."
            )

    return CustomizationResult(valid=not errors, errors=errors, counts=counts)


@dataclass
class SelectionEntry:
    """A product held in a CustomizationSelection."""

    product_id: str
    category: str
    unit_price: Decimal
    quantity: int


class CustomizationSelection:
    """Selection state for one checkout attempt.

    Created when a customer starts customizing a plan and discarded once the
    checkout session is created. Quantities are always positive; setting a
    quantity to zero or less removes the product.
    """

    def __init__(self, rules: Iterable[CustomizationRule] = ()) -> None:
        self.rules: list[CustomizationRule] = list(rules)
        self._entries: dict[str, SelectionEntry] = {}

    def add(self, product_id: str, category: str, quantity: int, unit_price: Any = 0) -> None:
        """Add units of a product, accumulating onto an existing entry."""
        if quantity <= 0:
            return
        key = str(product_id)
        entry = self._entries.get(key)
        if entry:
            entry.quantity += quantity
            return
        self._entries[key] = SelectionEntry(
            product_id=key,
            category=category,
            unit_price=Decimal(str(unit_price)),
            quantity=quantity,
        )

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set the quantity of a product already in the selection."""
        key = str(product_id)
        if quantity <= 0:
            self._entries.pop(key, None)
        elif key in self._entries:
            self._entries[key].quantity = quantity

    def remove(self, product_id: str) -> None:
        self._entries.pop(str(product_id), None)

    def clear(self) -> None:
        self._entries.clear()

    def count(self, category: str) -> int:
        """Number of units selected for a category."""
        return sum(e.quantity for e in self._entries.values() if e.category == category)

    def total(self) -> Decimal:
        """Sum of unit price times quantity over the selection."""
        return sum((e.unit_price * e.quantity for e in self._entries.values()), Decimal("0"))

    def items(self) -> list[SelectedItem]:
        return [
            SelectedItem(product_id=e.product_id, category=e.category, quantity=e.quantity)
            for e in self._entries.values()
        ]

    def validate(self) -> CustomizationResult:
        return validate_customization(self.rules, self.items())

    def to_metadata(self) -> dict[str, str]:
        """Serialize to the ``custom_items_N`` keys stored in payment metadata."""
        return encode_selection_metadata(
            (e.product_id, e.quantity) for e in self._entries.values()
        )

    def __len__(self) -> int:
        return len(self._entries)
