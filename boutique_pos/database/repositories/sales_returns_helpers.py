from __future__ import annotations

from typing import Dict, Tuple
import sqlite3

LineKey = Tuple[int, int]  # (product_id, size_id)


def sold_quantities(conn: sqlite3.Connection, sale_id: int) -> Dict[LineKey, int]:
    """Quantity sold per (product_id, size_id) on one sale."""
    rows = conn.execute(
        """
        SELECT product_id, size_id, SUM(quantity) AS qty
        FROM sale_items
        WHERE sale_id = ?
        GROUP BY product_id, size_id
        """,
        (sale_id,),
    ).fetchall()
    return {(int(r["product_id"]), int(r["size_id"])): int(r["qty"]) for r in rows}


def returned_quantities(conn: sqlite3.Connection, sale_id: int) -> Dict[LineKey, int]:
    """Quantity already returned per (product_id, size_id) across every return of a sale."""
    rows = conn.execute(
        """
        SELECT ri.product_id, ri.size_id, SUM(ri.quantity) AS qty
        FROM return_items ri
        JOIN returns r ON r.return_id = ri.return_id
        WHERE r.sale_id = ?
        GROUP BY ri.product_id, ri.size_id
        """,
        (sale_id,),
    ).fetchall()
    return {(int(r["product_id"]), int(r["size_id"])): int(r["qty"]) for r in rows}


def get_returnable_quantities(conn: sqlite3.Connection, sale_id: int) -> Dict[LineKey, int]:
    """
    Compute remaining returnable quantity per (product_id, size_id) for a sale.

    Clamped to >= 0. Lines that were never sold are absent.
    """
    returned = returned_quantities(conn, sale_id)
    return {
        key: max(0, sold - returned.get(key, 0))
        for key, sold in sold_quantities(conn, sale_id).items()
    }
