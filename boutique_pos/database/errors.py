# database/errors.py
"""
Error taxonomy shared by repositories, the service handle and the bridge.

Every message is meant to be shown to the operator as-is.
"""
from __future__ import annotations


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""
    pass


class ValidationError(DomainError):
    """Input rejected before touching the database."""
    pass


class NotFoundError(DomainError):
    """A referenced sale/customer/product/size does not exist."""
    pass


class ConflictError(DomainError):
    """Request clashes with existing state (duplicate phone, repeated return, ...)."""
    pass


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: int, size_id: int, on_hand: int, requested: int):
        self.product_id = product_id
        self.size_id = size_id
        self.on_hand = on_hand
        self.requested = requested
        super().__init__(
            f"Not enough stock for product {product_id} (size {size_id}): "
            f"on hand {on_hand}, requested {requested}."
        )


class StorageError(DomainError):
    """A sqlite3 failure, wrapped with the operation that was running."""

    def __init__(self, operation: str, exc: BaseException):
        self.operation = operation
        super().__init__(f"{operation} failed: {exc.__class__.__name__}: {exc}")
