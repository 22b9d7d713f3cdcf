from __future__ import annotations
from dataclasses import dataclass, field
import sqlite3
from typing import Optional

from ..errors import NotFoundError, ValidationError
from ..transactions import immediate_tx
from .stock_repo import StockRepo
from .sales_returns_helpers import returned_quantities
from ...config import LedgerConfig
from ...constants import (
    DOC_NO_SUFFIX_LEN,
    PAYMENT_CREDIT,
    REASON_SALE,
    SALE_NO_PREFIX,
    SALE_PAYMENT_METHODS,
)
from ...utils.helpers import new_doc_no, now_str, round_money
from ...utils.validators import is_non_negative_number, is_positive_int


@dataclass
class NewSaleLine:
    product_id: int
    size_id: int
    quantity: int
    unit_price: float


@dataclass
class NewSale:
    items: list[NewSaleLine]
    discount: float = 0.0
    payment_method: str = "cash"
    customer_id: int | None = None
    notes: str | None = None
    created_at: str | None = None


@dataclass
class Sale:
    sale_id: int
    sale_no: str
    customer_id: int | None
    customer_name: str | None
    gross_amount: float
    discount: float
    net_amount: float
    payment_method: str
    notes: str | None
    created_at: str


@dataclass
class SaleItem:
    item_id: int
    sale_id: int
    product_id: int
    product_name: str
    barcode: str
    size_id: int
    size_label: str
    quantity: int
    unit_price: float
    line_total: float
    returned_quantity: int = 0


@dataclass
class SaleWithItems:
    sale: Sale
    items: list[SaleItem] = field(default_factory=list)


_SALE_SELECT = """
    SELECT s.sale_id, s.sale_no, s.customer_id,
           CASE WHEN c.customer_id IS NULL THEN NULL
                ELSE c.first_name || ' ' || c.last_name END AS customer_name,
           CAST(s.gross_amount AS REAL) AS gross_amount,
           CAST(s.discount AS REAL)     AS discount,
           CAST(s.net_amount AS REAL)   AS net_amount,
           s.payment_method, s.notes, s.created_at
    FROM sales s
    LEFT JOIN customers c ON c.customer_id = s.customer_id
"""


class SalesRepo:
    """
    Sales repository.

    A sale is written as one unit: header, items and one `out` stock
    movement per item. Any failure along the way leaves nothing behind.
    """

    def __init__(self, conn: sqlite3.Connection, config: LedgerConfig | None = None):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.config = config or LedgerConfig()
        self.stock = StockRepo(conn, self.config)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_sale(self, sale_id: int) -> Sale | None:
        r = self.conn.execute(_SALE_SELECT + " WHERE s.sale_id = ?", (sale_id,)).fetchone()
        return Sale(**r) if r else None

    def require_sale(self, sale_id: int) -> Sale:
        sale = self.get_sale(sale_id)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found.")
        return sale

    def get_sale_with_items(self, sale_id: int) -> SaleWithItems:
        """Header plus its lines; each line carries the quantity returned so far."""
        sale = self.require_sale(sale_id)
        rows = self.conn.execute(
            """
            SELECT si.item_id, si.sale_id, si.product_id, p.name AS product_name, p.barcode,
                   si.size_id, z.label AS size_label, si.quantity,
                   CAST(si.unit_price AS REAL) AS unit_price,
                   CAST(si.line_total AS REAL) AS line_total
            FROM sale_items si
            JOIN products p ON p.product_id = si.product_id
            JOIN sizes z    ON z.size_id    = si.size_id
            WHERE si.sale_id = ?
            ORDER BY si.item_id
            """,
            (sale_id,),
        ).fetchall()

        # Returned quantities are tracked per (product, size); spread them over
        # the sale's lines in item order.
        remaining = dict(returned_quantities(self.conn, sale_id))
        items: list[SaleItem] = []
        for r in rows:
            item = SaleItem(**r)
            key = (item.product_id, item.size_id)
            taken = min(item.quantity, remaining.get(key, 0))
            item.returned_quantity = taken
            if taken:
                remaining[key] -= taken
            items.append(item)
        return SaleWithItems(sale=sale, items=items)

    def list_sales(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        *,
        customer_id: Optional[int] = None,
        query: str = "",
    ) -> list[Sale]:
        """
        Newest first. Date bounds are inclusive 'YYYY-MM-DD'; `query` matches
        the sale number or the customer's name.
        """
        where: list[str] = []
        params: list = []
        if date_from:
            where.append("DATE(s.created_at) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(s.created_at) <= DATE(?)")
            params.append(date_to)
        if customer_id is not None:
            where.append("s.customer_id = ?")
            params.append(customer_id)
        if query:
            where.append("(s.sale_no LIKE ? OR c.first_name LIKE ? OR c.last_name LIKE ?)")
            params += [f"%{query}%"] * 3

        sql = _SALE_SELECT
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY s.created_at DESC, s.sale_id DESC"
        return [Sale(**r) for r in self.conn.execute(sql, params).fetchall()]

    def customer_sales(self, customer_id: int) -> list[Sale]:
        if self.conn.execute(
            "SELECT 1 FROM customers WHERE customer_id = ?", (customer_id,)
        ).fetchone() is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        return self.list_sales(customer_id=customer_id)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def _validate(self, new_sale: NewSale) -> float:
        """Input checks that need no database access. Returns the gross amount."""
        if not new_sale.items:
            raise ValidationError("A sale needs at least one item.")
        if new_sale.payment_method not in SALE_PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {new_sale.payment_method!r}.")
        if new_sale.payment_method == PAYMENT_CREDIT and new_sale.customer_id is None:
            raise ValidationError("A sale on credit needs a customer.")
        if not is_non_negative_number(new_sale.discount):
            raise ValidationError("Discount must be a non-negative number.")

        gross = 0.0
        for line in new_sale.items:
            if not is_positive_int(line.quantity):
                raise ValidationError("Item quantity must be a positive whole number.")
            if not is_non_negative_number(line.unit_price):
                raise ValidationError("Unit price must be a non-negative number.")
            gross += float(line.unit_price) * line.quantity

        gross = round_money(gross)
        if float(new_sale.discount) > gross:
            raise ValidationError("Discount cannot exceed the sale total.")
        return gross

    def _unique_sale_no(self) -> str:
        while True:
            sale_no = new_doc_no(SALE_NO_PREFIX, DOC_NO_SUFFIX_LEN)
            if self.conn.execute(
                "SELECT 1 FROM sales WHERE sale_no = ?", (sale_no,)
            ).fetchone() is None:
                return sale_no

    def _insert_header(self, new_sale: NewSale, sale_no: str, gross: float, created_at: str) -> int:
        discount = round_money(new_sale.discount)
        cur = self.conn.execute(
            """
            INSERT INTO sales (sale_no, customer_id, gross_amount, discount, net_amount,
                               payment_method, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale_no,
                new_sale.customer_id,
                gross,
                discount,
                round_money(gross - discount),
                new_sale.payment_method,
                new_sale.notes,
                created_at,
            ),
        )
        return int(cur.lastrowid)

    def _insert_item(self, sale_id: int, line: NewSaleLine, created_at: str) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO sale_items (sale_id, product_id, size_id, quantity, unit_price,
                                    line_total, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sale_id,
                line.product_id,
                line.size_id,
                int(line.quantity),
                float(line.unit_price),
                round_money(float(line.unit_price) * line.quantity),
                created_at,
            ),
        )
        return int(cur.lastrowid)

    def create_sale(self, new_sale: NewSale) -> Sale:
        """
        Record a sale: header, items, and a stock decrease per item.

        gross = sum(unit_price * quantity), net = gross - discount. The sale
        number is 'S-' plus 8 random uppercase alphanumerics.
        """
        gross = self._validate(new_sale)
        created_at = new_sale.created_at or now_str()

        with immediate_tx(self.conn):
            if new_sale.customer_id is not None and self.conn.execute(
                "SELECT 1 FROM customers WHERE customer_id = ?", (new_sale.customer_id,)
            ).fetchone() is None:
                raise NotFoundError(f"Customer {new_sale.customer_id} not found.")

            sale_no = self._unique_sale_no()
            sale_id = self._insert_header(new_sale, sale_no, gross, created_at)
            for line in new_sale.items:
                self.stock.require_pair(line.product_id, line.size_id)
                self._insert_item(sale_id, line, created_at)
                self.stock.adjust(
                    product_id=line.product_id,
                    size_id=line.size_id,
                    delta=-int(line.quantity),
                    reason=REASON_SALE,
                    notes=f"Sale: {sale_no}",
                    created_at=created_at,
                )

        return self.require_sale(sale_id)
