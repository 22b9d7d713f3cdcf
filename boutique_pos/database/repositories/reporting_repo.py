from __future__ import annotations

import sqlite3
from typing import Optional

from ..errors import NotFoundError
from ...constants import (
    INBOUND_PURCHASE_REASONS,
    MOVEMENT_IN,
    PAYMENT_CREDIT,
    PAYMENT_RETURN_CREDIT,
    RETURN_STATUS_FULL,
    RETURN_STATUS_NONE,
    RETURN_STATUS_PARTIAL,
)
from ...utils.helpers import first_of_month_str, month_str, round_money, today_str


def return_status(returned_qty: int, sold_qty: int) -> str:
    """'none' / 'partial' / 'full' for a sale, by pieces returned against pieces sold."""
    if not returned_qty:
        return RETURN_STATUS_NONE
    if sold_qty and returned_qty >= sold_qty:
        return RETURN_STATUS_FULL
    return RETURN_STATUS_PARTIAL


_RANGE = """
    (:date_from IS NULL OR DATE({col}) >= DATE(:date_from))
    AND (:date_to IS NULL OR DATE({col}) <= DATE(:date_to))
"""


def _range(col: str) -> str:
    return _RANGE.format(col=col)


# Sold lines minus returned lines, each dated by its own document.
_NET_LINES = f"""
    net_lines AS (
        SELECT si.product_id, si.size_id,
               si.quantity                     AS qty,
               CAST(si.line_total AS REAL)     AS revenue
        FROM sale_items si
        JOIN sales s ON s.sale_id = si.sale_id
        WHERE {_range("s.created_at")}
        UNION ALL
        SELECT ri.product_id, ri.size_id,
               -ri.quantity                    AS qty,
               -CAST(ri.line_total AS REAL)    AS revenue
        FROM return_items ri
        JOIN returns r ON r.return_id = ri.return_id
        WHERE {_range("r.created_at")}
    )
"""


class ReportingRepo:
    """
    Read-only queries for the dashboard and report screens.

    Every filter is a bound parameter. Empty periods come back as zero-filled
    rows rather than None. Date bounds are inclusive 'YYYY-MM-DD'; months are
    'YYYY-MM'.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ----------------------------------------------------------------------
    # ------------------------- SALES SUMMARIES ----------------------------
    # ----------------------------------------------------------------------

    def _grouped_sales(self, bucket: str, date_from, date_to) -> list[dict]:
        sql = f"""
        SELECT {bucket} AS period,
               COUNT(*)                                       AS sale_count,
               COALESCE(SUM(CAST(s.gross_amount AS REAL)), 0.0) AS gross,
               COALESCE(SUM(CAST(s.discount AS REAL)), 0.0)     AS discount,
               COALESCE(SUM(CAST(s.net_amount AS REAL)), 0.0)   AS net
        FROM sales s
        WHERE {_range("s.created_at")}
        GROUP BY period
        ORDER BY period DESC
        """
        rows = self.conn.execute(sql, {"date_from": date_from, "date_to": date_to})
        return [dict(r) for r in rows]

    def daily_sales(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[dict]:
        """One row per day with sales: count, gross, discount, net. Newest first."""
        out = self._grouped_sales("DATE(s.created_at)", date_from, date_to)
        for row in out:
            row["day"] = row.pop("period")
        return out

    def monthly_sales(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[dict]:
        out = self._grouped_sales("strftime('%Y-%m', s.created_at)", date_from, date_to)
        for row in out:
            row["month"] = row.pop("period")
        return out

    def _summary(self, bucket: str, value: str) -> dict:
        sales = self.conn.execute(
            f"""
            SELECT COUNT(*)                                         AS sale_count,
                   COALESCE(SUM(CAST(s.gross_amount AS REAL)), 0.0) AS gross,
                   COALESCE(SUM(CAST(s.discount AS REAL)), 0.0)     AS discount,
                   COALESCE(SUM(CAST(s.net_amount AS REAL)), 0.0)   AS net,
                   COALESCE(SUM(CASE WHEN s.payment_method = :credit
                                     THEN CAST(s.net_amount AS REAL) END), 0.0) AS credit_sales
            FROM sales s
            WHERE {bucket.format(col="s.created_at")} = :value
            """,
            {"value": value, "credit": PAYMENT_CREDIT},
        ).fetchone()
        items = self.conn.execute(
            f"""
            SELECT COALESCE(SUM(si.quantity), 0) AS items_sold
            FROM sale_items si
            JOIN sales s ON s.sale_id = si.sale_id
            WHERE {bucket.format(col="s.created_at")} = :value
            """,
            {"value": value},
        ).fetchone()
        returns = self.conn.execute(
            f"""
            SELECT COUNT(*)                                         AS return_count,
                   COALESCE(SUM(CAST(r.total_amount AS REAL)), 0.0) AS returns_total
            FROM returns r
            WHERE {bucket.format(col="r.created_at")} = :value
            """,
            {"value": value},
        ).fetchone()
        payments = self.conn.execute(
            f"""
            SELECT COALESCE(SUM(CAST(dp.amount AS REAL)), 0.0) AS debt_collected
            FROM debt_payments dp
            WHERE {bucket.format(col="dp.created_at")} = :value
              AND dp.method <> :return_credit
            """,
            {"value": value, "return_credit": PAYMENT_RETURN_CREDIT},
        ).fetchone()
        out = dict(sales)
        out["items_sold"] = int(items["items_sold"])
        out.update(dict(returns))
        out["debt_collected"] = float(payments["debt_collected"])
        return out

    def daily_summary(self, day: Optional[str] = None) -> dict:
        """Totals for one day (default today); all zeros for a day without activity."""
        day = day or today_str()
        out = self._summary("DATE({col})", day)
        out["day"] = day
        return out

    def monthly_summary(self, month: Optional[str] = None) -> dict:
        month = month or month_str()
        out = self._summary("strftime('%Y-%m', {col})", month)
        out["month"] = month
        return out

    # ----------------------------------------------------------------------
    # ------------------------------ STOCK ---------------------------------
    # ----------------------------------------------------------------------

    def low_stock(self, category_id: Optional[int] = None) -> list[dict]:
        """Stock rows at or below their threshold, emptiest first."""
        sql = """
        SELECT s.product_id, p.name AS product_name, p.barcode,
               c.name AS category_name, s.size_id, z.label AS size_label,
               s.quantity, s.min_quantity
        FROM stock s
        JOIN products p        ON p.product_id  = s.product_id
        LEFT JOIN categories c ON c.category_id = p.category_id
        JOIN sizes z           ON z.size_id     = s.size_id
        WHERE s.quantity <= s.min_quantity
          AND (:category_id IS NULL OR p.category_id = :category_id)
        ORDER BY s.quantity ASC, p.name COLLATE NOCASE, s.size_id
        """
        return [dict(r) for r in self.conn.execute(sql, {"category_id": category_id})]

    def stock_valuation(self, category_id: Optional[int] = None) -> dict:
        """
        Value of goods on hand (quantity > 0) at cost and at retail.

        Returns {"rows": [...], "totals": {product_count, quantity, cost_value,
        retail_value, potential_margin}}. product_count counts distinct products.
        """
        sql = """
        SELECT s.product_id, p.name AS product_name, p.barcode,
               c.name AS category_name, s.size_id, z.label AS size_label,
               s.quantity,
               CAST(p.cost_price AS REAL)              AS cost_price,
               CAST(p.sale_price AS REAL)              AS sale_price,
               s.quantity * CAST(p.cost_price AS REAL) AS cost_value,
               s.quantity * CAST(p.sale_price AS REAL) AS retail_value
        FROM stock s
        JOIN products p        ON p.product_id  = s.product_id
        LEFT JOIN categories c ON c.category_id = p.category_id
        JOIN sizes z           ON z.size_id     = s.size_id
        WHERE s.quantity > 0
          AND (:category_id IS NULL OR p.category_id = :category_id)
        ORDER BY p.name COLLATE NOCASE, s.size_id
        """
        rows = [dict(r) for r in self.conn.execute(sql, {"category_id": category_id})]
        cost_value = round_money(sum(r["cost_value"] for r in rows))
        retail_value = round_money(sum(r["retail_value"] for r in rows))
        totals = {
            "product_count": len({r["product_id"] for r in rows}),
            "quantity": sum(r["quantity"] for r in rows),
            "cost_value": cost_value,
            "retail_value": retail_value,
            "potential_margin": round_money(retail_value - cost_value),
        }
        return {"rows": rows, "totals": totals}

    def product_movements(
        self,
        product_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[dict]:
        """Movement history of one product across its sizes, oldest first."""
        if self.conn.execute(
            "SELECT 1 FROM products WHERE product_id = ?", (product_id,)
        ).fetchone() is None:
            raise NotFoundError(f"Product {product_id} not found.")
        sql = f"""
        SELECT m.movement_id, m.size_id, z.label AS size_label, m.kind, m.reason,
               m.quantity, m.qty_before, m.qty_after, m.unit_cost, m.total_value,
               m.notes, m.created_at
        FROM stock_movements m
        JOIN sizes z ON z.size_id = m.size_id
        WHERE m.product_id = :product_id
          AND {_range("m.created_at")}
        ORDER BY m.created_at, m.movement_id
        """
        params = {"product_id": product_id, "date_from": date_from, "date_to": date_to}
        return [dict(r) for r in self.conn.execute(sql, params)]

    # ----------------------------------------------------------------------
    # ------------------------------ SALES ---------------------------------
    # ----------------------------------------------------------------------

    def sales_list(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[dict]:
        """Sales with their line/piece counts and how much of each came back."""
        sql = f"""
        SELECT s.sale_id, s.sale_no, s.customer_id,
               CASE WHEN c.customer_id IS NULL THEN NULL
                    ELSE c.first_name || ' ' || c.last_name END AS customer_name,
               CAST(s.gross_amount AS REAL) AS gross_amount,
               CAST(s.discount AS REAL)     AS discount,
               CAST(s.net_amount AS REAL)   AS net_amount,
               s.payment_method, s.created_at,
               (SELECT COUNT(*) FROM sale_items si WHERE si.sale_id = s.sale_id) AS item_count,
               (SELECT COALESCE(SUM(si.quantity), 0) FROM sale_items si
                 WHERE si.sale_id = s.sale_id)                                    AS sold_qty,
               (SELECT COALESCE(SUM(ri.quantity), 0)
                  FROM return_items ri JOIN returns r ON r.return_id = ri.return_id
                 WHERE r.sale_id = s.sale_id)                                     AS returned_qty
        FROM sales s
        LEFT JOIN customers c ON c.customer_id = s.customer_id
        WHERE {_range("s.created_at")}
        ORDER BY s.created_at DESC, s.sale_id DESC
        """
        out = []
        for r in self.conn.execute(sql, {"date_from": date_from, "date_to": date_to}):
            d = dict(r)
            d["return_status"] = return_status(d["returned_qty"], d["sold_qty"])
            out.append(d)
        return out

    # ----------------------------------------------------------------------
    # ------------------------------ PROFIT --------------------------------
    # ----------------------------------------------------------------------

    def _discount_total(self, params: dict) -> float:
        """Discounts granted in range; prorated by line value when a category is set."""
        if params.get("category_id") is None:
            row = self.conn.execute(
                f"SELECT COALESCE(SUM(CAST(s.discount AS REAL)), 0.0) AS d "
                f"FROM sales s WHERE {_range('s.created_at')}",
                params,
            ).fetchone()
            return float(row["d"])
        sql = f"""
        SELECT COALESCE(SUM(
                 CAST(s.discount AS REAL) * t.category_total / CAST(s.gross_amount AS REAL)
               ), 0.0) AS d
        FROM sales s
        JOIN (
            SELECT si.sale_id, SUM(CAST(si.line_total AS REAL)) AS category_total
            FROM sale_items si
            JOIN products p ON p.product_id = si.product_id
            WHERE p.category_id = :category_id
            GROUP BY si.sale_id
        ) t ON t.sale_id = s.sale_id
        WHERE s.gross_amount > 0
          AND {_range("s.created_at")}
        """
        return float(self.conn.execute(sql, params).fetchone()["d"])

    def profit_report(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> dict:
        """
        Profit per (product, size) over a period (default: this month so far).

        Quantities and revenue are sales minus returns in the period; cost is
        valued at the product's current cost price. net_profit = profit - discounts.
        """
        params = {
            "date_from": date_from or first_of_month_str(),
            "date_to": date_to or today_str(),
            "category_id": category_id,
        }
        sql = f"""
        WITH {_NET_LINES}
        SELECT l.product_id, p.name AS product_name, p.barcode,
               c.name AS category_name, l.size_id, z.label AS size_label,
               SUM(l.qty)                                AS quantity,
               SUM(l.revenue)                            AS revenue,
               CAST(p.cost_price AS REAL)                AS unit_cost,
               SUM(l.qty) * CAST(p.cost_price AS REAL)   AS cost
        FROM net_lines l
        JOIN products p        ON p.product_id  = l.product_id
        LEFT JOIN categories c ON c.category_id = p.category_id
        JOIN sizes z           ON z.size_id     = l.size_id
        WHERE (:category_id IS NULL OR p.category_id = :category_id)
        GROUP BY l.product_id, l.size_id
        ORDER BY p.name COLLATE NOCASE, l.size_id
        """
        rows = []
        for r in self.conn.execute(sql, params):
            d = dict(r)
            d["revenue"] = round_money(d["revenue"])
            d["cost"] = round_money(d["cost"])
            d["profit"] = round_money(d["revenue"] - d["cost"])
            rows.append(d)

        total_revenue = round_money(sum(r["revenue"] for r in rows))
        total_cost = round_money(sum(r["cost"] for r in rows))
        total_profit = round_money(total_revenue - total_cost)
        total_discount = round_money(self._discount_total(params))
        totals = {
            "quantity": sum(r["quantity"] for r in rows),
            "revenue": total_revenue,
            "cost": total_cost,
            "profit": total_profit,
            "discount": total_discount,
            "net_profit": round_money(total_profit - total_discount),
        }
        return {
            "date_from": params["date_from"],
            "date_to": params["date_to"],
            "rows": rows,
            "totals": totals,
        }

    def product_statistics(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> dict:
        """
        Per product over a period (default: this month so far): pieces received
        and their value, pieces sold net of returns, revenue, cost, profit,
        average margin per piece and current stock on hand.

        totals.avg_margin_percent = profit / cost * 100 (0 when there is no cost).
        """
        params = {
            "date_from": date_from or first_of_month_str(),
            "date_to": date_to or today_str(),
            "category_id": category_id,
        }
        placeholders = ", ".join(f":reason{i}" for i in range(len(INBOUND_PURCHASE_REASONS)))
        for i, reason in enumerate(INBOUND_PURCHASE_REASONS):
            params[f"reason{i}"] = reason
        params["kind_in"] = MOVEMENT_IN

        sql = f"""
        WITH {_NET_LINES},
        sold AS (
            SELECT product_id, SUM(qty) AS sold_qty, SUM(revenue) AS revenue
            FROM net_lines
            GROUP BY product_id
        ),
        inbound AS (
            SELECT m.product_id,
                   SUM(m.quantity)                          AS in_qty,
                   SUM(COALESCE(CAST(m.total_value AS REAL), 0.0)) AS in_value
            FROM stock_movements m
            WHERE m.kind = :kind_in
              AND m.reason IN ({placeholders})
              AND {_range("m.created_at")}
            GROUP BY m.product_id
        ),
        on_hand AS (
            SELECT product_id, SUM(quantity) AS current_stock
            FROM stock
            GROUP BY product_id
        )
        SELECT p.product_id, p.name AS product_name, p.barcode, c.name AS category_name,
               CAST(p.cost_price AS REAL)                 AS cost_price,
               CAST(p.sale_price AS REAL)                 AS sale_price,
               COALESCE(i.in_qty, 0)                      AS in_qty,
               COALESCE(i.in_value, 0.0)                  AS in_value,
               COALESCE(s.sold_qty, 0)                    AS sold_qty,
               COALESCE(s.revenue, 0.0)                   AS revenue,
               COALESCE(h.current_stock, 0)               AS current_stock
        FROM products p
        LEFT JOIN categories c ON c.category_id = p.category_id
        LEFT JOIN sold s       ON s.product_id  = p.product_id
        LEFT JOIN inbound i    ON i.product_id  = p.product_id
        LEFT JOIN on_hand h    ON h.product_id  = p.product_id
        WHERE (:category_id IS NULL OR p.category_id = :category_id)
          AND (s.product_id IS NOT NULL OR i.product_id IS NOT NULL)
        ORDER BY p.name COLLATE NOCASE
        """
        rows = []
        for r in self.conn.execute(sql, params):
            d = dict(r)
            d["in_value"] = round_money(d["in_value"])
            d["revenue"] = round_money(d["revenue"])
            d["cost"] = round_money(d["sold_qty"] * d["cost_price"])
            d["profit"] = round_money(d["revenue"] - d["cost"])
            d["avg_unit_margin"] = (
                round_money(d["profit"] / d["sold_qty"]) if d["sold_qty"] else 0.0
            )
            rows.append(d)

        total_cost = round_money(sum(r["cost"] for r in rows))
        total_profit = round_money(sum(r["profit"] for r in rows))
        totals = {
            "in_qty": sum(r["in_qty"] for r in rows),
            "in_value": round_money(sum(r["in_value"] for r in rows)),
            "sold_qty": sum(r["sold_qty"] for r in rows),
            "revenue": round_money(sum(r["revenue"] for r in rows)),
            "cost": total_cost,
            "profit": total_profit,
            "current_stock": sum(r["current_stock"] for r in rows),
            "avg_margin_percent": (
                round_money(total_profit / total_cost * 100) if total_cost else 0.0
            ),
        }
        return {
            "date_from": params["date_from"],
            "date_to": params["date_to"],
            "rows": rows,
            "totals": totals,
        }
