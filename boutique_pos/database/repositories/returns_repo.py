from __future__ import annotations
from dataclasses import dataclass, field
import sqlite3
from typing import Optional

from ..errors import ConflictError, NotFoundError, ValidationError
from ..transactions import immediate_tx
from .debt_payments_repo import DebtPaymentsRepo
from .sales_returns_helpers import returned_quantities, sold_quantities
from .stock_repo import StockRepo
from ...config import LedgerConfig
from ...constants import (
    DOC_NO_SUFFIX_LEN,
    PAYMENT_CREDIT,
    PAYMENT_RETURN_CREDIT,
    REASON_RETURN,
    RETURN_NO_PREFIX,
    RETURN_POLICY_SINGLE,
)
from ...utils.helpers import new_doc_no, now_str, round_money
from ...utils.validators import is_non_negative_number, is_positive_int


@dataclass
class NewReturnLine:
    product_id: int
    size_id: int
    quantity: int
    # None -> the price the line was sold at
    unit_price: float | None = None


@dataclass
class NewReturn:
    sale_id: int
    items: list[NewReturnLine]
    reason: str | None = None
    notes: str | None = None
    created_at: str | None = None


@dataclass
class Return:
    return_id: int
    return_no: str
    sale_id: int
    sale_no: str
    customer_id: int | None
    customer_name: str | None
    total_amount: float
    reason: str | None
    notes: str | None
    created_at: str


@dataclass
class ReturnItem:
    return_item_id: int
    return_id: int
    product_id: int
    product_name: str
    size_id: int
    size_label: str
    quantity: int
    unit_price: float
    line_total: float


@dataclass
class ReturnWithItems:
    ret: Return
    items: list[ReturnItem] = field(default_factory=list)


_RETURN_SELECT = """
    SELECT r.return_id, r.return_no, r.sale_id, s.sale_no, r.customer_id,
           CASE WHEN c.customer_id IS NULL THEN NULL
                ELSE c.first_name || ' ' || c.last_name END AS customer_name,
           CAST(r.total_amount AS REAL) AS total_amount,
           r.reason, r.notes, r.created_at
    FROM returns r
    JOIN sales s          ON s.sale_id     = r.sale_id
    LEFT JOIN customers c ON c.customer_id = r.customer_id
"""


class ReturnsRepo:
    """
    Sale returns.

    One call writes the header, its items, an `in` stock movement per item
    and, for a sale made on credit, a `return_credit` payment that lowers the
    customer's debt by the refunded amount. All of it or none of it.
    """

    def __init__(self, conn: sqlite3.Connection, config: LedgerConfig | None = None):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.config = config or LedgerConfig()
        self.stock = StockRepo(conn, self.config)
        self.payments = DebtPaymentsRepo(conn)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_return(self, return_id: int) -> Return | None:
        r = self.conn.execute(_RETURN_SELECT + " WHERE r.return_id = ?", (return_id,)).fetchone()
        return Return(**r) if r else None

    def get_return_with_items(self, return_id: int) -> ReturnWithItems:
        ret = self.get_return(return_id)
        if ret is None:
            raise NotFoundError(f"Return {return_id} not found.")
        rows = self.conn.execute(
            """
            SELECT ri.return_item_id, ri.return_id, ri.product_id, p.name AS product_name,
                   ri.size_id, z.label AS size_label, ri.quantity,
                   CAST(ri.unit_price AS REAL) AS unit_price,
                   CAST(ri.line_total AS REAL) AS line_total
            FROM return_items ri
            JOIN products p ON p.product_id = ri.product_id
            JOIN sizes z    ON z.size_id    = ri.size_id
            WHERE ri.return_id = ?
            ORDER BY ri.return_item_id
            """,
            (return_id,),
        ).fetchall()
        return ReturnWithItems(ret=ret, items=[ReturnItem(**r) for r in rows])

    def list_returns(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        *,
        sale_id: Optional[int] = None,
    ) -> list[Return]:
        sql = _RETURN_SELECT + """
            WHERE (:date_from IS NULL OR DATE(r.created_at) >= DATE(:date_from))
              AND (:date_to   IS NULL OR DATE(r.created_at) <= DATE(:date_to))
              AND (:sale_id   IS NULL OR r.sale_id = :sale_id)
            ORDER BY r.created_at DESC, r.return_id DESC
        """
        params = {"date_from": date_from, "date_to": date_to, "sale_id": sale_id}
        return [Return(**r) for r in self.conn.execute(sql, params).fetchall()]

    def returned_quantities(self, sale_id: int) -> dict[tuple[int, int], int]:
        return returned_quantities(self.conn, sale_id)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def _sold_unit_price(self, sale_id: int, product_id: int, size_id: int) -> float:
        """Average price the (product, size) was sold at on this sale."""
        row = self.conn.execute(
            """
            SELECT SUM(CAST(line_total AS REAL)) AS total, SUM(quantity) AS qty
            FROM sale_items
            WHERE sale_id = ? AND product_id = ? AND size_id = ?
            """,
            (sale_id, product_id, size_id),
        ).fetchone()
        if not row or not row["qty"]:
            return 0.0
        return round_money(float(row["total"]) / int(row["qty"]))

    def _check_quantities(self, new_return: NewReturn) -> None:
        """Reject lines that were never sold, over-returns and (by policy) repeats."""
        sold = sold_quantities(self.conn, new_return.sale_id)
        already = returned_quantities(self.conn, new_return.sale_id)

        requested: dict[tuple[int, int], int] = {}
        for line in new_return.items:
            key = (line.product_id, line.size_id)
            requested[key] = requested.get(key, 0) + int(line.quantity)

        for (product_id, size_id), qty in requested.items():
            key = (product_id, size_id)
            if key not in sold:
                raise ValidationError(
                    f"Product {product_id} (size {size_id}) is not part of this sale."
                )
            if qty > sold[key]:
                raise ConflictError(
                    f"Cannot return {qty} of product {product_id} (size {size_id}): "
                    f"only {sold[key]} sold."
                )
            previous = already.get(key, 0)
            if self.config.return_policy == RETURN_POLICY_SINGLE:
                if previous > 0:
                    raise ConflictError(
                        f"Product {product_id} (size {size_id}) has already been returned "
                        f"for this sale."
                    )
            elif previous + qty > sold[key]:
                raise ConflictError(
                    f"Cannot return {qty} of product {product_id} (size {size_id}): "
                    f"{previous} of {sold[key]} already returned."
                )

    def _unique_return_no(self) -> str:
        while True:
            return_no = new_doc_no(RETURN_NO_PREFIX, DOC_NO_SUFFIX_LEN)
            if self.conn.execute(
                "SELECT 1 FROM returns WHERE return_no = ?", (return_no,)
            ).fetchone() is None:
                return return_no

    def create_return(self, new_return: NewReturn) -> Return:
        if not new_return.items:
            raise ValidationError("A return needs at least one item.")
        for line in new_return.items:
            if not is_positive_int(line.quantity):
                raise ValidationError("Return quantity must be a positive whole number.")
            if line.unit_price is not None and not is_non_negative_number(line.unit_price):
                raise ValidationError("Unit price must be a non-negative number.")

        created_at = new_return.created_at or now_str()

        with immediate_tx(self.conn):
            sale = self.conn.execute(
                "SELECT sale_id, sale_no, customer_id, payment_method FROM sales WHERE sale_id = ?",
                (new_return.sale_id,),
            ).fetchone()
            if sale is None:
                raise NotFoundError(f"Sale {new_return.sale_id} not found.")

            self._check_quantities(new_return)

            priced = []
            for line in new_return.items:
                unit_price = (
                    float(line.unit_price)
                    if line.unit_price is not None
                    else self._sold_unit_price(sale["sale_id"], line.product_id, line.size_id)
                )
                priced.append((line, unit_price, round_money(unit_price * int(line.quantity))))
            total = round_money(sum(p[2] for p in priced))

            return_no = self._unique_return_no()
            cur = self.conn.execute(
                """
                INSERT INTO returns (return_no, sale_id, customer_id, total_amount,
                                     reason, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    return_no,
                    sale["sale_id"],
                    sale["customer_id"],
                    total,
                    new_return.reason,
                    new_return.notes,
                    created_at,
                ),
            )
            return_id = int(cur.lastrowid)

            for line, unit_price, line_total in priced:
                self.conn.execute(
                    """
                    INSERT INTO return_items (return_id, product_id, size_id, quantity,
                                              unit_price, line_total, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (return_id, line.product_id, line.size_id, int(line.quantity),
                     unit_price, line_total, created_at),
                )
                self.stock.adjust(
                    product_id=line.product_id,
                    size_id=line.size_id,
                    delta=int(line.quantity),
                    reason=REASON_RETURN,
                    notes=f"Return: {return_no}",
                    created_at=created_at,
                )

            # Refund of an on-credit sale is booked against the customer's debt
            if (
                sale["payment_method"] == PAYMENT_CREDIT
                and sale["customer_id"] is not None
                and total > 0
            ):
                self.payments._insert_payment(
                    customer_id=sale["customer_id"],
                    amount=total,
                    method=PAYMENT_RETURN_CREDIT,
                    notes=f"Return: {return_no} (sale {sale['sale_no']})",
                    created_at=created_at,
                )

        return self.get_return(return_id)
