# boutique_pos/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own file-backed SQLite DB under tmp_path
#   (schema, migrations and reference seeds applied by get_connection)
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - `ids` seeds two products, one customer and opening stock, and hands
#   back the ids tests need
# - QtCore only (no widgets): bridge tests share one QCoreApplication
# ---------------------------------------------------------------------

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from boutique_pos.config import LedgerConfig
from boutique_pos.database import get_connection
from boutique_pos.database.repositories import (
    CatalogRepo,
    CustomersRepo,
    ProductsRepo,
    StockRepo,
)
from boutique_pos.service import PosService

OPENING_STOCK = 10


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "boutique.db"


@pytest.fixture()
def config() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture()
def conn(db_path: Path):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def service(conn: sqlite3.Connection, config: LedgerConfig) -> PosService:
    return PosService(conn=conn, config=config)


# ---------- Handy lookups ----------
@pytest.fixture()
def ids(conn: sqlite3.Connection) -> dict:
    """
    Two products (P1 sells at 10 / costs 6, P2 sells at 20 / costs 12),
    sizes M and 42, one customer, and OPENING_STOCK pieces of
    (P1, M) and (P2, 42).
    """
    catalog = CatalogRepo(conn)
    products = ProductsRepo(conn)
    stock = StockRepo(conn)
    customers = CustomersRepo(conn)

    shirts = next(c for c in catalog.list_categories() if c.name == "Shirts")
    footwear = next(c for c in catalog.list_categories() if c.name == "Footwear")
    size_m = catalog.size_by_label("M")
    size_42 = catalog.size_by_label("42")

    p1 = products.create(
        barcode="1000000000017", name="Oxford Shirt", cost_price=6, sale_price=10,
        category_id=shirts.category_id, color="White", brand="House",
    )
    p2 = products.create(
        barcode="1000000000024", name="Derby Shoe", cost_price=12, sale_price=20,
        category_id=footwear.category_id, color="Black", brand="House",
    )
    stock.set_quantity(product_id=p1.product_id, size_id=size_m.size_id, quantity=OPENING_STOCK)
    stock.set_quantity(product_id=p2.product_id, size_id=size_42.size_id, quantity=OPENING_STOCK)

    customer = customers.create("Aysel", "Mammadova", "+994501112233")

    return {
        "p1": p1.product_id,
        "p2": p2.product_id,
        "size_m": size_m.size_id,
        "size_42": size_42.size_id,
        "size_xl": catalog.size_by_label("XL").size_id,
        "cat_shirts": shirts.category_id,
        "cat_footwear": footwear.category_id,
        "customer": customer.customer_id,
    }


@pytest.fixture()
def count_rows(conn: sqlite3.Connection):
    def count(table: str) -> int:
        return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])

    return count
