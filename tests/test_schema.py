import sqlite3

import pytest

from boutique_pos.constants import DEFAULT_CATEGORIES, DEFAULT_SIZES, SCHEMA_VERSION
from boutique_pos.database import get_connection
from boutique_pos.database.schema import run_migrations
from boutique_pos.database.versioning import get_current_version


def _columns(conn, table):
    return {r[1] for r in conn.execute(f"PRAGMA table_info({table})")}


def test_reopening_does_not_duplicate_seed_rows(db_path):
    first = get_connection(db_path)
    first.close()
    conn = get_connection(db_path)
    try:
        assert conn.execute("SELECT COUNT(*) FROM sizes").fetchone()[0] == len(DEFAULT_SIZES)
        assert conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0] == len(DEFAULT_CATEGORIES)
        assert conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0] == 1
        assert get_current_version(conn) == SCHEMA_VERSION
    finally:
        conn.close()


def test_migrations_are_noop_on_current_schema(conn):
    assert run_migrations(conn) == 0


def test_old_customers_table_gets_opening_debt(db_path):
    old = sqlite3.connect(db_path)
    old.executescript(
        """
        CREATE TABLE customers (
            customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name  TEXT NOT NULL,
            last_name   TEXT NOT NULL,
            phone       TEXT NOT NULL UNIQUE,
            notes       TEXT,
            created_at  DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at  DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        INSERT INTO customers(first_name, last_name, phone) VALUES ('Old', 'Timer', '555');
        """
    )
    old.commit()
    old.close()

    conn = get_connection(db_path)
    try:
        assert "opening_debt" in _columns(conn, "customers")
        row = conn.execute("SELECT opening_debt FROM customers WHERE phone='555'").fetchone()
        assert row["opening_debt"] == 0
    finally:
        conn.close()


def test_lookup_indexes_exist(conn):
    names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
    for idx in (
        "idx_products_barcode",
        "idx_stock_product",
        "idx_sales_created_at",
        "idx_sale_items_sale",
        "idx_returns_sale",
        "idx_debt_payments_customer",
    ):
        assert idx in names


def test_stock_movements_are_append_only(conn, ids):
    movement_id = conn.execute("SELECT MIN(movement_id) FROM stock_movements").fetchone()[0]
    assert movement_id is not None
    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        conn.execute("UPDATE stock_movements SET quantity = 0 WHERE movement_id = ?", (movement_id,))
    conn.rollback()
    with pytest.raises(sqlite3.DatabaseError, match="append-only"):
        conn.execute("DELETE FROM stock_movements WHERE movement_id = ?", (movement_id,))
    conn.rollback()


def test_foreign_keys_enforced(conn):
    assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
