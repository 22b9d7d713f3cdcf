# database/repositories/catalog_repo.py
"""Reference data shared by every product: categories, sizes and colors."""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from ..errors import ConflictError, ValidationError
from ..transactions import immediate_tx
from ...utils.validators import is_text


@dataclass
class Category:
    category_id: int
    name: str


@dataclass
class Size:
    size_id: int
    label: str


@dataclass
class Color:
    color_id: int
    name: str
    hex_code: str | None


class CatalogRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    @staticmethod
    def _clean(value: str | None, field_label: str) -> str:
        if not is_text(value) or value.strip() == "":
            raise ValidationError(f"{field_label} cannot be empty.")
        return value.strip()

    # ---- categories -------------------------------------------------------

    def list_categories(self) -> list[Category]:
        rows = self.conn.execute(
            "SELECT category_id, name FROM categories ORDER BY name COLLATE NOCASE"
        ).fetchall()
        return [Category(**r) for r in rows]

    def create_category(self, name: str) -> Category:
        name_n = self._clean(name, "Category name")
        with immediate_tx(self.conn):
            if self.conn.execute(
                "SELECT 1 FROM categories WHERE name = ? COLLATE NOCASE", (name_n,)
            ).fetchone():
                raise ConflictError(f"Category '{name_n}' already exists.")
            cur = self.conn.execute("INSERT INTO categories(name) VALUES (?)", (name_n,))
        return Category(category_id=int(cur.lastrowid), name=name_n)

    # ---- sizes ------------------------------------------------------------

    def list_sizes(self) -> list[Size]:
        rows = self.conn.execute("SELECT size_id, label FROM sizes ORDER BY size_id").fetchall()
        return [Size(**r) for r in rows]

    def size_by_label(self, label: str) -> Size | None:
        r = self.conn.execute(
            "SELECT size_id, label FROM sizes WHERE label = ?", (label,)
        ).fetchone()
        return Size(**r) if r else None

    def create_size(self, label: str) -> Size:
        label_n = self._clean(label, "Size")
        with immediate_tx(self.conn):
            if self.size_by_label(label_n) is not None:
                raise ConflictError(f"Size '{label_n}' already exists.")
            cur = self.conn.execute("INSERT INTO sizes(label) VALUES (?)", (label_n,))
        return Size(size_id=int(cur.lastrowid), label=label_n)

    # ---- colors -----------------------------------------------------------

    def list_colors(self) -> list[Color]:
        rows = self.conn.execute(
            "SELECT color_id, name, hex_code FROM colors ORDER BY name COLLATE NOCASE"
        ).fetchall()
        return [Color(**r) for r in rows]
