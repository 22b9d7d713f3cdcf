import sqlite3

from ...constants import (
    DEFAULT_CATEGORIES,
    DEFAULT_COLORS,
    DEFAULT_SIZES,
    DEFAULT_STORE_NAME,
)


def seed(conn: sqlite3.Connection) -> None:
    """
    Reference data the till needs on first start. Safe to run repeatedly:
    UNIQUE columns + INSERT OR IGNORE keep every row single.
    """
    conn.executemany(
        "INSERT OR IGNORE INTO sizes(label) VALUES (?)",
        [(s,) for s in DEFAULT_SIZES],
    )
    conn.executemany(
        "INSERT OR IGNORE INTO categories(name) VALUES (?)",
        [(c,) for c in DEFAULT_CATEGORIES],
    )
    conn.executemany(
        "INSERT OR IGNORE INTO colors(name, hex_code) VALUES (?, ?)",
        list(DEFAULT_COLORS),
    )
    conn.execute(
        "INSERT OR IGNORE INTO settings(id, store_name) VALUES (1, ?)",
        (DEFAULT_STORE_NAME,),
    )
    conn.commit()
