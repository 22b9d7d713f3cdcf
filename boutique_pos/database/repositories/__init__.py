# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from boutique_pos.database.repositories import (
        # Catalog
        CatalogRepo, Category, Size, Color, ProductsRepo, Product,
        # Stock ledger
        StockRepo, StockLevel, StockMovement, Adjustment,
        # Customers & debt
        CustomersRepo, Customer, DebtBreakdown, DebtPaymentsRepo, DebtPayment,
        # Sales & returns
        SalesRepo, NewSale, NewSaleLine, Sale, SaleItem, SaleWithItems,
        ReturnsRepo, NewReturn, NewReturnLine, Return, ReturnItem, ReturnWithItems,
        # Reporting
        ReportingRepo,
    )
"""

# ---------------- Catalog ------------------
from .catalog_repo import CatalogRepo, Category, Color, Size
from .products_repo import Product, ProductsRepo

# ---------------- Stock --------------------
from .stock_repo import Adjustment, StockLevel, StockMovement, StockRepo

# ---------------- Customers ----------------
from .customers_repo import Customer, CustomersRepo, DebtBreakdown
from .debt_payments_repo import DebtPayment, DebtPaymentsRepo

# ---------------- Sales & returns ----------
from .sales_repo import NewSale, NewSaleLine, Sale, SaleItem, SaleWithItems, SalesRepo
from .returns_repo import (
    NewReturn,
    NewReturnLine,
    Return,
    ReturnItem,
    ReturnWithItems,
    ReturnsRepo,
)
from .sales_returns_helpers import get_returnable_quantities

# ---------------- Reporting ----------------
from .reporting_repo import ReportingRepo, return_status

__all__ = [
    "CatalogRepo", "Category", "Color", "Size",
    "Product", "ProductsRepo",
    "Adjustment", "StockLevel", "StockMovement", "StockRepo",
    "Customer", "CustomersRepo", "DebtBreakdown",
    "DebtPayment", "DebtPaymentsRepo",
    "NewSale", "NewSaleLine", "Sale", "SaleItem", "SaleWithItems", "SalesRepo",
    "NewReturn", "NewReturnLine", "Return", "ReturnItem", "ReturnWithItems", "ReturnsRepo",
    "get_returnable_quantities",
    "ReportingRepo", "return_status",
]
