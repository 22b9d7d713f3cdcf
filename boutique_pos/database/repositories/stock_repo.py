"""
Stock ledger: quantity on hand per (product, size) plus its movement audit.

Conventions:
- `adjust()` never commits. It is a building block for the sale and return
  orchestrators and runs inside their transaction, so the quantity change and
  its movement row land together or not at all.
- The public one-shot operations (`receive`, `set_quantity`, `remove`) wrap
  themselves in `immediate_tx`.
- Movement rows store the absolute quantity moved; `kind` carries the direction.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..transactions import immediate_tx
from ...config import LedgerConfig
from ...constants import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_CORRECTION,
    REASON_REMOVAL,
    REASON_RESTOCK,
)
from ...utils.helpers import now_str, round_money
from ...utils.validators import is_positive_int


@dataclass
class Adjustment:
    movement_id: int
    product_id: int
    size_id: int
    qty_before: int
    qty_after: int

    @property
    def delta(self) -> int:
        return self.qty_after - self.qty_before


@dataclass
class StockLevel:
    stock_id: int
    product_id: int
    size_id: int
    quantity: int
    min_quantity: int
    product_name: str
    barcode: str
    category_id: int | None
    category_name: str | None
    size_label: str


@dataclass
class StockMovement:
    movement_id: int
    product_id: int
    size_id: int
    kind: str
    reason: str
    quantity: int
    qty_before: int
    qty_after: int
    unit_cost: float | None
    total_value: float | None
    notes: str | None
    created_at: str


_LEVEL_SELECT = """
    SELECT s.stock_id, s.product_id, s.size_id, s.quantity, s.min_quantity,
           p.name AS product_name, p.barcode, p.category_id, c.name AS category_name,
           z.label AS size_label
    FROM stock s
    JOIN products p        ON p.product_id  = s.product_id
    LEFT JOIN categories c ON c.category_id = p.category_id
    JOIN sizes z           ON z.size_id     = s.size_id
"""


class StockRepo:
    def __init__(self, conn: sqlite3.Connection, config: LedgerConfig | None = None):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self.config = config or LedgerConfig()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def current_quantity(self, product_id: int, size_id: int) -> int:
        """Quantity on hand; a missing (product, size) row counts as zero."""
        row = self.conn.execute(
            "SELECT quantity FROM stock WHERE product_id = ? AND size_id = ?",
            (product_id, size_id),
        ).fetchone()
        return int(row["quantity"]) if row else 0

    def get(self, product_id: int, size_id: int) -> StockLevel | None:
        r = self.conn.execute(
            _LEVEL_SELECT + " WHERE s.product_id = ? AND s.size_id = ?",
            (product_id, size_id),
        ).fetchone()
        return StockLevel(**r) if r else None

    def list_for_product(self, product_id: int) -> list[StockLevel]:
        rows = self.conn.execute(
            _LEVEL_SELECT + " WHERE s.product_id = ? ORDER BY z.size_id", (product_id,)
        ).fetchall()
        return [StockLevel(**r) for r in rows]

    def list_all(self, category_id: Optional[int] = None) -> list[StockLevel]:
        sql = _LEVEL_SELECT
        params: list = []
        if category_id is not None:
            sql += " WHERE p.category_id = ?"
            params.append(category_id)
        sql += " ORDER BY p.name COLLATE NOCASE, z.size_id"
        return [StockLevel(**r) for r in self.conn.execute(sql, params).fetchall()]

    def movements(
        self,
        *,
        product_id: Optional[int] = None,
        size_id: Optional[int] = None,
        date_from: Optional[str] = None,   # inclusive 'YYYY-MM-DD'
        date_to: Optional[str] = None,     # inclusive 'YYYY-MM-DD'
    ) -> list[StockMovement]:
        """Audit rows, oldest first. Only applies WHERE fragments for given filters."""
        where: list[str] = []
        params: list = []
        if product_id is not None:
            where.append("product_id = ?")
            params.append(product_id)
        if size_id is not None:
            where.append("size_id = ?")
            params.append(size_id)
        if date_from:
            where.append("DATE(created_at) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(created_at) <= DATE(?)")
            params.append(date_to)

        sql = (
            "SELECT movement_id, product_id, size_id, kind, reason, quantity, qty_before, "
            "qty_after, unit_cost, total_value, notes, created_at FROM stock_movements"
        )
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY movement_id"
        return [StockMovement(**r) for r in self.conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Ledger primitive
    # ------------------------------------------------------------------
    def _cost_price(self, product_id: int) -> float:
        row = self.conn.execute(
            "SELECT CAST(cost_price AS REAL) AS cost_price FROM products WHERE product_id = ?",
            (product_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return float(row["cost_price"] or 0.0)

    def _require_size(self, size_id: int) -> None:
        if self.conn.execute("SELECT 1 FROM sizes WHERE size_id = ?", (size_id,)).fetchone() is None:
            raise NotFoundError(f"Size {size_id} not found.")

    def require_pair(self, product_id: int, size_id: int) -> None:
        """NotFoundError unless both the product and the size exist."""
        self._cost_price(product_id)
        self._require_size(size_id)

    def _log_movement(
        self,
        *,
        product_id: int,
        size_id: int,
        before: int,
        after: int,
        reason: str,
        notes: str | None,
        created_at: str,
        cost_price: float,
    ) -> int:
        kind = MOVEMENT_OUT if after < before else MOVEMENT_IN
        moved = abs(after - before)
        unit_cost = total_value = None
        if kind == MOVEMENT_IN:
            unit_cost = cost_price
            total_value = round_money(moved * cost_price)
        cur = self.conn.execute(
            """
            INSERT INTO stock_movements
                (product_id, size_id, kind, reason, quantity, qty_before, qty_after,
                 unit_cost, total_value, notes, created_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """,
            (product_id, size_id, kind, reason, moved, before, after,
             unit_cost, total_value, notes, created_at),
        )
        return int(cur.lastrowid)

    def _write_quantity(
        self, product_id: int, size_id: int, quantity: int, min_quantity: int | None
    ) -> None:
        """Upsert the (product, size) row. A new row gets the configured default threshold."""
        default_min = self.config.default_min_quantity if min_quantity is None else int(min_quantity)
        self.conn.execute(
            """
            INSERT INTO stock (product_id, size_id, quantity, min_quantity)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(product_id, size_id) DO UPDATE SET
                quantity     = excluded.quantity,
                min_quantity = CASE WHEN ? IS NULL THEN stock.min_quantity
                                    ELSE excluded.min_quantity END,
                updated_at   = CURRENT_TIMESTAMP
            """,
            (product_id, size_id, quantity, default_min, min_quantity),
        )

    def adjust(
        self,
        *,
        product_id: int,
        size_id: int,
        delta: int,
        reason: str,
        notes: str | None = None,
        created_at: str | None = None,
    ) -> Adjustment:
        """
        Apply a signed quantity change and append its movement row.

        Reads the current quantity (absent = 0), writes current + delta back
        (upserting the row), then logs kind/before/after/reason/note. Does not
        commit; call inside a transaction.
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("Stock quantity change must be a whole number.")

        cost_price = self._cost_price(product_id)
        self._require_size(size_id)

        before = self.current_quantity(product_id, size_id)
        after = before + delta
        if after < 0 and delta < 0 and not self.config.allow_negative_stock:
            raise InsufficientStockError(product_id, size_id, before, -delta)

        self._write_quantity(product_id, size_id, after, None)
        movement_id = self._log_movement(
            product_id=product_id,
            size_id=size_id,
            before=before,
            after=after,
            reason=reason,
            notes=notes,
            created_at=created_at or now_str(),
            cost_price=cost_price,
        )
        return Adjustment(movement_id, product_id, size_id, before, after)

    # ------------------------------------------------------------------
    # One-shot operations (own transaction)
    # ------------------------------------------------------------------
    def receive(
        self,
        *,
        product_id: int,
        size_id: int,
        quantity: int,
        min_quantity: int | None = None,
        notes: str | None = "Stock received",
        created_at: str | None = None,
    ) -> StockLevel:
        """Restock: add `quantity` pieces (and optionally set the alert threshold)."""
        if not is_positive_int(quantity):
            raise ValidationError("Received quantity must be a positive whole number.")
        with immediate_tx(self.conn):
            self.adjust(
                product_id=product_id,
                size_id=size_id,
                delta=int(quantity),
                reason=REASON_RESTOCK,
                notes=notes,
                created_at=created_at,
            )
            if min_quantity is not None:
                self.set_min_quantity(product_id, size_id, min_quantity)
        return self.get(product_id, size_id)

    @staticmethod
    def _check_min_quantity(min_quantity) -> None:
        if isinstance(min_quantity, bool) or not isinstance(min_quantity, int) or min_quantity < 0:
            raise ValidationError("Minimum quantity must be a non-negative whole number.")

    def set_min_quantity(self, product_id: int, size_id: int, min_quantity: int) -> None:
        self._check_min_quantity(min_quantity)
        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE stock SET min_quantity = ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE product_id = ? AND size_id = ?",
                (min_quantity, product_id, size_id),
            )

    def set_quantity(
        self,
        *,
        product_id: int,
        size_id: int,
        quantity: int,
        min_quantity: int | None = None,
        notes: str | None = "Stock correction",
        created_at: str | None = None,
    ) -> StockLevel:
        """
        Absolute correction after a count. Logs the difference as a movement;
        no movement when the quantity is unchanged.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Quantity must be a whole number.")
        if quantity < 0 and not self.config.allow_negative_stock:
            raise ValidationError("Quantity cannot be negative.")
        if min_quantity is not None:
            self._check_min_quantity(min_quantity)

        with immediate_tx(self.conn):
            cost_price = self._cost_price(product_id)
            self._require_size(size_id)
            before = self.current_quantity(product_id, size_id)
            self._write_quantity(product_id, size_id, quantity, min_quantity)
            if quantity != before:
                self._log_movement(
                    product_id=product_id,
                    size_id=size_id,
                    before=before,
                    after=quantity,
                    reason=REASON_CORRECTION,
                    notes=notes,
                    created_at=created_at or now_str(),
                    cost_price=cost_price,
                )
        return self.get(product_id, size_id)

    def remove(
        self,
        *,
        product_id: int,
        size_id: int,
        notes: str | None = "Stock row removed",
        created_at: str | None = None,
    ) -> None:
        """Delete the (product, size) row, logging the quantity that disappears."""
        with immediate_tx(self.conn):
            level = self.get(product_id, size_id)
            if level is None:
                raise NotFoundError(
                    f"No stock row for product {product_id} in size {size_id}."
                )
            self.conn.execute(
                "DELETE FROM stock WHERE product_id = ? AND size_id = ?",
                (product_id, size_id),
            )
            if level.quantity != 0:
                self._log_movement(
                    product_id=product_id,
                    size_id=size_id,
                    before=level.quantity,
                    after=0,
                    reason=REASON_REMOVAL,
                    notes=notes,
                    created_at=created_at or now_str(),
                    cost_price=self._cost_price(product_id),
                )
