from pathlib import Path
import sqlite3
import sys

from ..utils.loggers import get_logger

_log = get_logger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== REFERENCE DATA ======================== */

CREATE TABLE IF NOT EXISTS categories (
    category_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT NOT NULL UNIQUE,
    created_at  DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sizes (
    size_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    label      TEXT NOT NULL UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS colors (
    color_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL UNIQUE,
    hex_code   TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

/* -------- single-row store settings -------- */
CREATE TABLE IF NOT EXISTS settings (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    store_name  TEXT NOT NULL DEFAULT 'Boutique',
    logo_path   TEXT,
    phone       TEXT,
    address     TEXT,
    updated_at  DATETIME DEFAULT CURRENT_TIMESTAMP
);

/* ======================== CATALOG ======================== */

CREATE TABLE IF NOT EXISTS products (
    product_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    barcode      TEXT NOT NULL UNIQUE,
    name         TEXT NOT NULL,
    category_id  INTEGER,
    color        TEXT,
    brand        TEXT,
    cost_price   REAL NOT NULL DEFAULT 0 CHECK (cost_price >= 0),
    sale_price   REAL NOT NULL DEFAULT 0 CHECK (sale_price >= 0),
    description  TEXT,
    image_path   TEXT,
    created_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (category_id) REFERENCES categories(category_id)
);
CREATE INDEX IF NOT EXISTS idx_products_barcode ON products(barcode);

/* ======================== STOCK LEDGER ======================== */

/* one row per (product, size); quantity may be negative unless guarded in code */
CREATE TABLE IF NOT EXISTS stock (
    stock_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id   INTEGER NOT NULL,
    size_id      INTEGER NOT NULL,
    quantity     INTEGER NOT NULL DEFAULT 0,
    min_quantity INTEGER NOT NULL DEFAULT 5,
    created_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (product_id, size_id),
    FOREIGN KEY (product_id) REFERENCES products(product_id) ON DELETE CASCADE,
    FOREIGN KEY (size_id)    REFERENCES sizes(size_id)
);
CREATE INDEX IF NOT EXISTS idx_stock_product ON stock(product_id);

/* append-only audit trail, one row per quantity change */
CREATE TABLE IF NOT EXISTS stock_movements (
    movement_id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id  INTEGER NOT NULL,
    size_id     INTEGER NOT NULL,
    kind        TEXT NOT NULL CHECK (kind IN ('in','out')),
    reason      TEXT NOT NULL,
    quantity    INTEGER NOT NULL CHECK (quantity >= 0),
    qty_before  INTEGER NOT NULL,
    qty_after   INTEGER NOT NULL,
    unit_cost   REAL,
    total_value REAL,
    notes       TEXT,
    created_at  DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (product_id) REFERENCES products(product_id),
    FOREIGN KEY (size_id)    REFERENCES sizes(size_id)
);
CREATE INDEX IF NOT EXISTS idx_stock_movements_pair ON stock_movements(product_id, size_id);

DROP TRIGGER IF EXISTS trg_stock_movements_no_update;
CREATE TRIGGER trg_stock_movements_no_update
BEFORE UPDATE ON stock_movements
BEGIN
  SELECT RAISE(ABORT, 'stock_movements is append-only');
END;

DROP TRIGGER IF EXISTS trg_stock_movements_no_delete;
CREATE TRIGGER trg_stock_movements_no_delete
BEFORE DELETE ON stock_movements
BEGIN
  SELECT RAISE(ABORT, 'stock_movements is append-only');
END;

/* ======================== PARTIES ======================== */

CREATE TABLE IF NOT EXISTS customers (
    customer_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name   TEXT NOT NULL,
    last_name    TEXT NOT NULL,
    phone        TEXT NOT NULL UNIQUE,
    notes        TEXT,
    /* added via migration for old DBs; present by default for new DBs */
    opening_debt REAL NOT NULL DEFAULT 0,
    created_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at   DATETIME DEFAULT CURRENT_TIMESTAMP
);

/* ======================== DOCUMENTS ======================== */

CREATE TABLE IF NOT EXISTS sales (
    sale_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_no        TEXT NOT NULL UNIQUE,
    customer_id    INTEGER,
    gross_amount   REAL NOT NULL CHECK (gross_amount >= 0),
    discount       REAL NOT NULL DEFAULT 0 CHECK (discount >= 0),
    net_amount     REAL NOT NULL,
    payment_method TEXT NOT NULL DEFAULT 'cash',
    notes          TEXT,
    created_at     DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_sales_created_at ON sales(created_at);

CREATE TABLE IF NOT EXISTS sale_items (
    item_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id    INTEGER NOT NULL,
    product_id INTEGER NOT NULL,
    size_id    INTEGER NOT NULL,
    quantity   INTEGER NOT NULL CHECK (quantity > 0),
    unit_price REAL NOT NULL CHECK (unit_price >= 0),
    line_total REAL NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (sale_id)    REFERENCES sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id),
    FOREIGN KEY (size_id)    REFERENCES sizes(size_id)
);
CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id);

CREATE TABLE IF NOT EXISTS returns (
    return_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    return_no    TEXT NOT NULL UNIQUE,
    sale_id      INTEGER NOT NULL,
    customer_id  INTEGER,
    total_amount REAL NOT NULL CHECK (total_amount >= 0),
    reason       TEXT,
    notes        TEXT,
    created_at   DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (sale_id)     REFERENCES sales(sale_id),
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_returns_sale ON returns(sale_id);

CREATE TABLE IF NOT EXISTS return_items (
    return_item_id INTEGER PRIMARY KEY AUTOINCREMENT,
    return_id      INTEGER NOT NULL,
    product_id     INTEGER NOT NULL,
    size_id        INTEGER NOT NULL,
    quantity       INTEGER NOT NULL CHECK (quantity > 0),
    unit_price     REAL NOT NULL CHECK (unit_price >= 0),
    line_total     REAL NOT NULL,
    created_at     DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (return_id)  REFERENCES returns(return_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id),
    FOREIGN KEY (size_id)    REFERENCES sizes(size_id)
);
CREATE INDEX IF NOT EXISTS idx_return_items_return ON return_items(return_id);

/* ======================== CUSTOMER DEBT ======================== */

CREATE TABLE IF NOT EXISTS debt_payments (
    payment_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL,
    amount      REAL NOT NULL,
    method      TEXT NOT NULL DEFAULT 'cash',
    notes       TEXT,
    created_at  DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_debt_payments_customer ON debt_payments(customer_id);
"""

# Additive, idempotent forward migrations for databases created by older builds:
# (table, column, column DDL). Applied in order; a present column is skipped.
COLUMN_MIGRATIONS: tuple[tuple[str, str, str], ...] = (
    ("sales", "customer_id", "INTEGER REFERENCES customers(customer_id)"),
    ("customers", "opening_debt", "REAL NOT NULL DEFAULT 0"),
    ("stock_movements", "reason", "TEXT NOT NULL DEFAULT 'correction'"),
    ("stock_movements", "unit_cost", "REAL"),
    ("stock_movements", "total_value", "REAL"),
    ("settings", "logo_path", "TEXT"),
    ("settings", "phone", "TEXT"),
    ("settings", "address", "TEXT"),
)


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}  # row[1] = name


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> bool:
    """
    Safe migration for older DBs that created `table` before `column` existed.
    Adds the column if missing. No-op if already present. Returns True when added.
    """
    if column in _table_columns(conn, table):
        return False
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl};")
    _log.info("migration: added %s.%s", table, column)
    return True


def run_migrations(conn: sqlite3.Connection) -> int:
    """Apply every pending column migration; returns how many were applied."""
    applied = 0
    for table, column, ddl in COLUMN_MIGRATIONS:
        if _ensure_column(conn, table, column, ddl):
            applied += 1
    return applied


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create missing tables/indexes/triggers and run column migrations."""
    conn.executescript(SQL)
    run_migrations(conn)
    conn.commit()


def init_schema(db_path: Path | str = "boutique.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
    finally:
        conn.close()
    _log.info("schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "boutique.db"
    init_schema(target)
