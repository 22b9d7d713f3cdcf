# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION
from . import schema as schema_module
from .seeders.default_data import seed as seed_default_data
from .versioning import get_current_version, set_current_version
from ..utils.loggers import get_logger

_log = get_logger(__name__)


def get_connection(
    db_path: Path | str | None = None,
    *,
    check_same_thread: bool = False,
) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures schema, migrations & seed data are applied idempotently.

    `check_same_thread` defaults to False: the connection is meant to be owned
    by one service object that serializes callers with its own lock.
    """
    path = Path(db_path) if db_path is not None else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")

    # Always apply the schema (idempotent: CREATE IF NOT EXISTS / DROP TRIGGER IF EXISTS)
    schema_module.apply_schema(conn)

    # Seeders are safe to run repeatedly (idempotent).
    seed_default_data(conn)

    previous = get_current_version(conn)
    if previous != SCHEMA_VERSION:
        set_current_version(conn, SCHEMA_VERSION)
        _log.info("schema version %s -> %s (%s)", previous, SCHEMA_VERSION, path)

    return conn


__all__ = [
    "get_connection",
]
