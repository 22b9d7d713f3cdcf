# database/transactions.py
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    All-or-nothing unit of work.

    Starts a BEGIN IMMEDIATE transaction (takes the write lock up front),
    commits on success and rolls back on any exception. When the connection is
    already inside a transaction the block runs under a SAVEPOINT instead, so
    it joins the caller's unit of work and only undoes its own writes on error.
    """
    if conn.in_transaction:
        conn.execute("SAVEPOINT unit_of_work")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK TO SAVEPOINT unit_of_work")
            conn.execute("RELEASE SAVEPOINT unit_of_work")
            raise
        conn.execute("RELEASE SAVEPOINT unit_of_work")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
