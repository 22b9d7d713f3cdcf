# database/repositories/products_repo.py
from dataclasses import dataclass
import sqlite3

from ..errors import ConflictError, NotFoundError, ValidationError
from ..transactions import immediate_tx
from ...utils.sql import UNSET, build_update
from ...utils.validators import is_non_negative_number, is_text, non_empty


@dataclass
class Product:
    product_id: int | None
    barcode: str
    name: str
    category_id: int | None
    category_name: str | None
    color: str | None
    brand: str | None
    cost_price: float
    sale_price: float
    description: str | None


_SELECT = """
    SELECT p.product_id, p.barcode, p.name, p.category_id, c.name AS category_name,
           p.color, p.brand,
           CAST(p.cost_price AS REAL) AS cost_price,
           CAST(p.sale_price AS REAL) AS sale_price,
           p.description
    FROM products p
    LEFT JOIN categories c ON c.category_id = p.category_id
"""

_UPDATABLE = (
    "barcode", "name", "category_id", "color", "brand",
    "cost_price", "sale_price", "description", "image_path",
)


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # Use Row for named access; we normalize to dataclasses on the way out.
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Queries ----------------------------

    def list_products(self) -> list[Product]:
        rows = self.conn.execute(_SELECT + " ORDER BY p.product_id DESC").fetchall()
        return [Product(**r) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(_SELECT + " WHERE p.product_id = ?", (product_id,)).fetchone()
        return Product(**r) if r else None

    def require(self, product_id: int) -> Product:
        product = self.get(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def get_by_barcode(self, barcode: str) -> Product | None:
        if not is_text(barcode):
            raise ValidationError("Barcode must be text.")
        r = self.conn.execute(_SELECT + " WHERE p.barcode = ?", (barcode.strip(),)).fetchone()
        return Product(**r) if r else None

    def search(self, term: str) -> list[Product]:
        """LIKE match on name, barcode and brand."""
        if not is_text(term):
            raise ValidationError("Search term must be text.")
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            _SELECT
            + " WHERE p.name LIKE ? OR p.barcode LIKE ? OR p.brand LIKE ?"
            + " ORDER BY p.name COLLATE NOCASE",
            (pattern, pattern, pattern),
        ).fetchall()
        return [Product(**r) for r in rows]

    # ---------------------------- Mutations ----------------------------

    @staticmethod
    def _check_prices(cost_price, sale_price) -> None:
        if cost_price is not UNSET and not is_non_negative_number(cost_price):
            raise ValidationError("Cost price must be a non-negative number.")
        if sale_price is not UNSET and not is_non_negative_number(sale_price):
            raise ValidationError("Sale price must be a non-negative number.")

    def _check_category(self, category_id) -> None:
        if category_id is None or category_id is UNSET:
            return
        if self.conn.execute(
            "SELECT 1 FROM categories WHERE category_id = ?", (category_id,)
        ).fetchone() is None:
            raise NotFoundError(f"Category {category_id} not found.")

    def create(
        self,
        *,
        barcode: str,
        name: str,
        cost_price: float,
        sale_price: float,
        category_id: int | None = None,
        color: str | None = None,
        brand: str | None = None,
        description: str | None = None,
    ) -> Product:
        if not is_text(barcode) or not non_empty(barcode):
            raise ValidationError("Barcode cannot be empty.")
        if not is_text(name) or not non_empty(name):
            raise ValidationError("Name cannot be empty.")
        self._check_prices(cost_price, sale_price)

        with immediate_tx(self.conn):
            if self.get_by_barcode(barcode) is not None:
                raise ConflictError(f"A product with barcode '{barcode.strip()}' already exists.")
            self._check_category(category_id)
            cur = self.conn.execute(
                "INSERT INTO products(barcode, name, category_id, color, brand, "
                "cost_price, sale_price, description) VALUES (?,?,?,?,?,?,?,?)",
                (
                    barcode.strip(), name.strip(), category_id, color, brand,
                    float(cost_price), float(sale_price), description,
                ),
            )
            product_id = int(cur.lastrowid)
        return self.require(product_id)

    def update(
        self,
        product_id: int,
        *,
        barcode=UNSET,
        name=UNSET,
        category_id=UNSET,
        color=UNSET,
        brand=UNSET,
        cost_price=UNSET,
        sale_price=UNSET,
        description=UNSET,
    ) -> Product:
        """
        Partial update: only passed fields change.

        NOTE: prices are not frozen once sold; reports value cost at the
        current cost_price.
        """
        self._check_prices(cost_price, sale_price)
        if barcode is not UNSET and (not is_text(barcode) or not non_empty(barcode)):
            raise ValidationError("Barcode cannot be empty.")
        if name is not UNSET and (not is_text(name) or not non_empty(name)):
            raise ValidationError("Name cannot be empty.")

        with immediate_tx(self.conn):
            self.require(product_id)
            self._check_category(category_id)
            if barcode is not UNSET:
                clash = self.get_by_barcode(barcode)
                if clash is not None and clash.product_id != product_id:
                    raise ConflictError(f"A product with barcode '{barcode.strip()}' already exists.")
            built = build_update(
                "products",
                {
                    "barcode": barcode.strip() if barcode is not UNSET else UNSET,
                    "name": name.strip() if name is not UNSET else UNSET,
                    "category_id": category_id,
                    "color": color,
                    "brand": brand,
                    "cost_price": float(cost_price) if cost_price is not UNSET else UNSET,
                    "sale_price": float(sale_price) if sale_price is not UNSET else UNSET,
                    "description": description,
                },
                allowed=_UPDATABLE,
                key_column="product_id",
                key_value=product_id,
                touch_column="updated_at",
            )
            if built is not None:
                sql, params = built
                self.conn.execute(sql, params)
        return self.require(product_id)
