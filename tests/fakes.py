"""In-memory stand-in for the Supabase client used by service tests.

Supports the subset of the PostgREST query builder the services use:
select (with count="exact"), insert, upsert with ignore_duplicates, update,
delete, and the eq/neq/lt/is_/in_/or_/order/range/limit modifiers. Unique
columns are enforced per table so concurrent-claim paths behave like
Postgres. The functions in supabase/migrations/0002_atomic_materialization.sql
are reimplemented for rpc(), and each rpc call rolls back on error like the
transaction it stands in for.
"""

import copy
import itertools
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

# Principals used across tests
CUSTOMER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_CUSTOMER_ID = "550e8400-e29b-41d4-a716-446655440099"
ADMIN_ID = "990e8400-e29b-41d4-a716-446655440000"

# Unique columns per table, mirroring supabase/migrations
UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {
    "orders": ("stripe_payment_intent_id",),
    "user_subscriptions": ("stripe_payment_reference", "stripe_subscription_id"),
    "subscription_plans": ("slug",),
    "customers": ("stripe_customer_id",),
}


class UniqueViolation(Exception):
    """Raised on an insert that breaks a unique column."""


class FakeDatabaseError(Exception):
    """Raised on an insert into a table set to fail with ``fail_inserts``."""


@dataclass
class FakeResponse:
    data: Any
    count: int | None = None


class FakeQuery:
    """Accumulates a query and runs it against the table on execute()."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table_name = table
        self._action = "select"
        self._payload: Any = None
        self._count: str | None = None
        self._on_conflict: str | None = None
        self._ignore_duplicates = False
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._range: tuple[int, int] | None = None
        self._limit: int | None = None

    # Actions

    def select(self, columns: str = "*", count: str | None = None) -> "FakeQuery":
        self._count = count
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self._action = "insert"
        self._payload = payload
        return self

    def upsert(self, payload: Any, on_conflict: str = "id", ignore_duplicates: bool = False) -> "FakeQuery":
        self._action = "upsert"
        self._payload = payload
        self._on_conflict = on_conflict
        self._ignore_duplicates = ignore_duplicates
        return self

    def update(self, payload: dict[str, Any]) -> "FakeQuery":
        self._action = "update"
        self._payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    # Filters

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: _norm(row.get(column)) == _norm(value))
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: _norm(row.get(column)) != _norm(value))
        return self

    def lt(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(
            lambda row: row.get(column) is not None and _norm(row.get(column)) < _norm(value)
        )
        return self

    def is_(self, column: str, value: Any) -> "FakeQuery":
        expected = None if value in (None, "null") else value
        self._filters.append(lambda row: _norm(row.get(column)) == _norm(expected))
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        allowed = {_norm(v) for v in values}
        self._filters.append(lambda row: _norm(row.get(column)) in allowed)
        return self

    def or_(self, expression: str) -> "FakeQuery":
        clauses = []
        for clause in expression.split(","):
            column, op, pattern = clause.split(".", 2)
            if op != "ilike":
                raise NotImplementedError(op)
            clauses.append((column, pattern.strip("%").lower()))
        self._filters.append(
            lambda row: any(needle in str(row.get(col) or "").lower() for col, needle in clauses)
        )
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self._limit = size
        return self

    # Execution

    def _matches(self, row: dict[str, Any]) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table_name, self._action))
        rows = self.db.tables.setdefault(self.table_name, [])

        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            return FakeResponse([self.db.insert_row(self.table_name, p) for p in payload])

        if self._action == "upsert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for p in payload:
                existing = [
                    r for r in rows
                    if p.get(self._on_conflict) is not None
                    and _norm(r.get(self._on_conflict)) == _norm(p.get(self._on_conflict))
                ]
                if existing:
                    if not self._ignore_duplicates:
                        existing[0].update(copy.deepcopy(p))
                        inserted.append(copy.deepcopy(existing[0]))
                    continue
                inserted.append(self.db.insert_row(self.table_name, p))
            return FakeResponse(inserted)

        if self._action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return FakeResponse(updated)

        if self._action == "delete":
            kept = [r for r in rows if not self._matches(r)]
            deleted = [copy.deepcopy(r) for r in rows if self._matches(r)]
            self.db.tables[self.table_name] = kept
            return FakeResponse(deleted)

        selected = [copy.deepcopy(r) for r in rows if self._matches(r)]
        for column, desc in reversed(self._order):
            selected.sort(key=lambda r: (r.get(column) is None, _norm(r.get(column))), reverse=desc)
        count = len(selected) if self._count == "exact" else None
        if self._range is not None:
            selected = selected[self._range[0] : self._range[1] + 1]
        if self._limit is not None:
            selected = selected[: self._limit]
        return FakeResponse(selected, count)


class FakeRpc:
    """A database function call; runs on execute() and rolls back on error."""

    def __init__(self, db: "FakeSupabase", function: str, params: dict[str, Any]) -> None:
        self.db = db
        self.function = function
        self.params = params

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.function, "rpc"))
        handler = getattr(self.db, f"_fn_{self.function}")
        snapshot = copy.deepcopy(self.db.tables)
        try:
            data = handler(**copy.deepcopy(self.params))
        except Exception:
            self.db.tables = snapshot
            raise
        return FakeResponse(data)


class FakeSupabase:
    """Supabase client backed by lists of dicts."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self._clock = itertools.count()
        self.failing_tables: set[str] = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, function: str, params: dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, function, params)

    def fail_inserts(self, table: str) -> None:
        """Make every later insert into ``table`` raise FakeDatabaseError."""
        self.failing_tables.add(table)

    # Database functions

    def _fn_adjust_stock(self, p_product_id: str, p_delta: int) -> dict[str, Any] | None:
        product = self.get("products", p_product_id)
        if product is None:
            return None
        previous = int(product["stock_quantity"])
        product["stock_quantity"] = max(previous + int(p_delta), 0)
        return {**copy.deepcopy(product), "previous_stock": previous}

    def _consume_stock(self, items: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        movements = []
        for item in items:
            movement = self._fn_adjust_stock(item["product_id"], -int(item["quantity"]))
            movements.append(None if movement is None else {**movement, "requested": int(item["quantity"])})
        return movements

    def _materialize(
        self,
        table: str,
        reference_column: str,
        item_table: str,
        parent_column: str,
        record: dict[str, Any],
        items: list[dict[str, Any]],
    ) -> dict[str, Any]:
        for row in self.rows(table):
            if row.get(reference_column) == record[reference_column]:
                return {"created": False, "record": copy.deepcopy(row), "stock": []}
        created = self.insert_row(table, record)
        for item in items:
            self.insert_row(item_table, {**item, parent_column: created["id"]})
        return {"created": True, "record": created, "stock": self._consume_stock(items)}

    def _fn_materialize_order(self, p_record: dict[str, Any], p_items: list[dict[str, Any]]) -> dict[str, Any]:
        return self._materialize(
            "orders", "stripe_payment_intent_id", "order_items", "order_id", p_record, p_items
        )

    def _fn_materialize_subscription(
        self, p_record: dict[str, Any], p_items: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return self._materialize(
            "user_subscriptions",
            "stripe_payment_reference",
            "subscription_items",
            "subscription_id",
            p_record,
            p_items,
        )

    def insert_row(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert a row, filling id/created_at and enforcing unique columns."""
        if table in self.failing_tables:
            raise FakeDatabaseError(f"insert into {table} failed")
        row = copy.deepcopy(payload)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault(
            "created_at",
            (datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=next(self._clock))).isoformat(),
        )
        row.setdefault("updated_at", row["created_at"])
        rows = self.tables.setdefault(table, [])
        for column in ("id", *UNIQUE_COLUMNS.get(table, ())):
            value = row.get(column)
            if value is not None and any(_norm(r.get(column)) == _norm(value) for r in rows):
                raise UniqueViolation(f"duplicate key value violates unique constraint on {table}.{column}")
        rows.append(row)
        return copy.deepcopy(row)

    def seed(self, table: str, *rows: dict[str, Any]) -> list[dict[str, Any]]:
        return [self.insert_row(table, r) for r in rows]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        for row in self.rows(table):
            if str(row["id"]) == str(row_id):
                return row
        return None


def _norm(value: Any) -> Any:
    """Compare UUIDs and their string form as equal."""
    if isinstance(value, uuid.UUID):
        return str(value)
    return value
