"""Inventory, sales, returns and customer debt core for a single-store POS."""

from .config import LedgerConfig
from .service import PosService

__all__ = ["LedgerConfig", "PosService"]
