"""
boutique_pos/service.py

Purpose
-------
The handle the rest of the application talks to. Owns the single sqlite3
connection, the repositories built on it, and one re-entrant lock.

Every public method holds the lock for its full duration, so calls coming
from different threads (UI thread, background workers) are serialized. Domain
errors pass through unchanged; any sqlite3 failure is re-raised as
StorageError naming the operation that was running.
"""
from __future__ import annotations

import functools
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .config import LedgerConfig
from .constants import REASON_CORRECTION
from .database import get_connection
from .database.errors import DomainError, StorageError, ValidationError
from .database.repositories import (
    CatalogRepo,
    CustomersRepo,
    DebtPaymentsRepo,
    NewReturn,
    NewSale,
    ProductsRepo,
    ReportingRepo,
    ReturnsRepo,
    SalesRepo,
    StockRepo,
    get_returnable_quantities,
)
from .database.transactions import immediate_tx
from .utils.loggers import get_logger

_log = get_logger(__name__)


def _locked(operation: str):
    """Serialize the call on the service lock and translate storage failures."""

    def deco(fn):
        @functools.wraps(fn)
        def wrapper(self: "PosService", *args, **kwargs):
            with self._lock:
                try:
                    return fn(self, *args, **kwargs)
                except DomainError as e:
                    _log.warning("%s rejected: %s", operation, e)
                    raise
                except sqlite3.Error as e:
                    _log.error("%s failed: %s", operation, e)
                    raise StorageError(operation, e) from e

        return wrapper

    return deco


class PosService:
    """
    Typed API over the inventory, sales, returns and customer debt core.

    Usage:
        with PosService("data/boutique.db") as pos:
            sale = pos.create_sale(NewSale(items=[NewSaleLine(1, 3, 2, 25.0)]))
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        config: LedgerConfig | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self.config = config or LedgerConfig.from_env()
        self._lock = threading.RLock()
        self._owns_conn = conn is None
        self.conn = conn if conn is not None else get_connection(db_path)

        self.catalog = CatalogRepo(self.conn)
        self.products = ProductsRepo(self.conn)
        self.stock = StockRepo(self.conn, self.config)
        self.customers = CustomersRepo(self.conn)
        self.sales = SalesRepo(self.conn, self.config)
        self.returns = ReturnsRepo(self.conn, self.config)
        self.payments = DebtPaymentsRepo(self.conn)
        self.reports = ReportingRepo(self.conn)
        _log.debug("service ready (config=%s)", self.config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        with self._lock:
            if self._owns_conn and self.conn is not None:
                self.conn.close()
                _log.debug("connection closed")
            self.conn = None

    def __enter__(self) -> "PosService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    @_locked("list categories")
    def list_categories(self):
        return self.catalog.list_categories()

    @_locked("create category")
    def create_category(self, name: str):
        return self.catalog.create_category(name)

    @_locked("list sizes")
    def list_sizes(self):
        return self.catalog.list_sizes()

    @_locked("create size")
    def create_size(self, label: str):
        return self.catalog.create_size(label)

    @_locked("list colors")
    def list_colors(self):
        return self.catalog.list_colors()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    @_locked("list products")
    def list_products(self):
        return self.products.list_products()

    @_locked("get product")
    def get_product(self, product_id: int):
        return self.products.require(product_id)

    @_locked("find product by barcode")
    def find_product_by_barcode(self, barcode: str):
        return self.products.get_by_barcode(barcode)

    @_locked("search products")
    def search_products(self, term: str):
        return self.products.search(term)

    @_locked("create product")
    def create_product(self, **fields):
        return self.products.create(**fields)

    @_locked("update product")
    def update_product(self, product_id: int, **changes):
        return self.products.update(product_id, **changes)

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    @_locked("list stock")
    def list_stock(self, category_id: Optional[int] = None):
        return self.stock.list_all(category_id)

    @_locked("product stock")
    def stock_for_product(self, product_id: int):
        self.products.require(product_id)
        return self.stock.list_for_product(product_id)

    @_locked("current quantity")
    def current_quantity(self, product_id: int, size_id: int) -> int:
        return self.stock.current_quantity(product_id, size_id)

    @_locked("receive stock")
    def receive_stock(self, product_id: int, size_id: int, quantity: int, **kwargs):
        return self.stock.receive(
            product_id=product_id, size_id=size_id, quantity=quantity, **kwargs
        )

    @_locked("set stock")
    def set_stock(self, product_id: int, size_id: int, quantity: int, **kwargs):
        return self.stock.set_quantity(
            product_id=product_id, size_id=size_id, quantity=quantity, **kwargs
        )

    @_locked("remove stock")
    def remove_stock(self, product_id: int, size_id: int, **kwargs) -> None:
        self.stock.remove(product_id=product_id, size_id=size_id, **kwargs)

    @_locked("adjust stock")
    def adjust_stock(
        self,
        product_id: int,
        size_id: int,
        delta: int,
        reason: str = REASON_CORRECTION,
        notes: str | None = None,
        created_at: str | None = None,
    ):
        """Manual signed adjustment, committed as its own unit of work."""
        if not delta:
            raise ValidationError("Adjustment cannot be zero.")
        with immediate_tx(self.conn):
            return self.stock.adjust(
                product_id=product_id,
                size_id=size_id,
                delta=delta,
                reason=reason,
                notes=notes,
                created_at=created_at,
            )

    @_locked("stock movements")
    def stock_movements(self, **filters):
        return self.stock.movements(**filters)

    # ------------------------------------------------------------------
    # Customers & debt
    # ------------------------------------------------------------------
    @_locked("list customers")
    def list_customers(self):
        return self.customers.list_customers()

    @_locked("search customers")
    def search_customers(self, term: str):
        return self.customers.search(term)

    @_locked("get customer")
    def get_customer(self, customer_id: int):
        return self.customers.require(customer_id)

    @_locked("create customer")
    def create_customer(self, first_name: str, last_name: str, phone: str, **kwargs):
        return self.customers.create(first_name, last_name, phone, **kwargs)

    @_locked("update customer")
    def update_customer(self, customer_id: int, **changes):
        return self.customers.update(customer_id, **changes)

    @_locked("outstanding debt")
    def outstanding_debt(self, customer_id: int) -> float:
        return self.customers.outstanding_debt(customer_id)

    @_locked("debt breakdown")
    def debt_breakdown(self, customer_id: int):
        return self.customers.debt_breakdown(customer_id)

    @_locked("debt summary")
    def debt_summary(self):
        return self.customers.debt_summary()

    @_locked("record debt payment")
    def record_debt_payment(self, customer_id: int, amount: float, **kwargs):
        payment = self.payments.record_payment(customer_id, amount, **kwargs)
        _log.info(
            "debt payment %s: customer %s paid %.2f (%s)",
            payment.payment_id, customer_id, payment.amount, payment.method,
        )
        return payment

    @_locked("list debt payments")
    def list_debt_payments(self, date_from: Optional[str] = None, date_to: Optional[str] = None):
        return self.payments.list_payments(date_from, date_to)

    @_locked("customer payments")
    def customer_payments(self, customer_id: int):
        return self.payments.customer_payments(customer_id)

    # ------------------------------------------------------------------
    # Sales & returns
    # ------------------------------------------------------------------
    @_locked("create sale")
    def create_sale(self, new_sale: NewSale):
        sale = self.sales.create_sale(new_sale)
        _log.info(
            "sale %s recorded: %d line(s), net %.2f (%s)",
            sale.sale_no, len(new_sale.items), sale.net_amount, sale.payment_method,
        )
        return sale

    @_locked("get sale")
    def get_sale(self, sale_id: int):
        return self.sales.require_sale(sale_id)

    @_locked("get sale with items")
    def get_sale_with_items(self, sale_id: int):
        return self.sales.get_sale_with_items(sale_id)

    @_locked("list sales")
    def list_sales(self, date_from: Optional[str] = None, date_to: Optional[str] = None, **filters):
        return self.sales.list_sales(date_from, date_to, **filters)

    @_locked("customer sales")
    def customer_sales(self, customer_id: int):
        return self.sales.customer_sales(customer_id)

    @_locked("create return")
    def create_return(self, new_return: NewReturn):
        ret = self.returns.create_return(new_return)
        _log.info(
            "return %s recorded against sale %s: total %.2f",
            ret.return_no, ret.sale_no, ret.total_amount,
        )
        return ret

    @_locked("get return")
    def get_return_with_items(self, return_id: int):
        return self.returns.get_return_with_items(return_id)

    @_locked("list returns")
    def list_returns(self, date_from: Optional[str] = None, date_to: Optional[str] = None, **filters):
        return self.returns.list_returns(date_from, date_to, **filters)

    @_locked("returned quantities")
    def returned_quantities(self, sale_id: int):
        self.sales.require_sale(sale_id)
        return self.returns.returned_quantities(sale_id)

    @_locked("returnable quantities")
    def returnable_quantities(self, sale_id: int):
        self.sales.require_sale(sale_id)
        return get_returnable_quantities(self.conn, sale_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    @_locked("daily sales report")
    def daily_sales(self, date_from: Optional[str] = None, date_to: Optional[str] = None):
        return self.reports.daily_sales(date_from, date_to)

    @_locked("monthly sales report")
    def monthly_sales(self, date_from: Optional[str] = None, date_to: Optional[str] = None):
        return self.reports.monthly_sales(date_from, date_to)

    @_locked("daily summary")
    def daily_summary(self, day: Optional[str] = None):
        return self.reports.daily_summary(day)

    @_locked("monthly summary")
    def monthly_summary(self, month: Optional[str] = None):
        return self.reports.monthly_summary(month)

    @_locked("low stock report")
    def low_stock(self, category_id: Optional[int] = None):
        return self.reports.low_stock(category_id)

    @_locked("sales list")
    def sales_list(self, date_from: Optional[str] = None, date_to: Optional[str] = None):
        return self.reports.sales_list(date_from, date_to)

    @_locked("profit report")
    def profit_report(self, date_from=None, date_to=None, category_id=None):
        return self.reports.profit_report(date_from, date_to, category_id)

    @_locked("product statistics")
    def product_statistics(self, date_from=None, date_to=None, category_id=None):
        return self.reports.product_statistics(date_from, date_to, category_id)

    @_locked("product movements")
    def product_movements(self, product_id: int, date_from=None, date_to=None):
        return self.reports.product_movements(product_id, date_from, date_to)

    @_locked("stock valuation")
    def stock_valuation(self, category_id: Optional[int] = None):
        return self.reports.stock_valuation(category_id)
