# Overview: Error taxonomy shared by the stock ledger and sale services.

"""
Ledger error classes.

Every error carries a human-readable message, a details dict that names the
offending product/line and the quantities involved, and the HTTP status the
JSON layer answers with:

- NotFoundError (404): product, category, warehouse, customer or sale id does
  not exist.
- InvalidOperationError (400): inactive product, insufficient stock, no active
  warehouse for a sale, product or customer still referenced by history.
- ConcurrencyConflict (409): another writer won the race; retry the whole
  operation.
- TransientStoreFailure (503): lock timeout or lost connection; retry the whole
  operation.
- OperationCancelled (409): the caller cancelled before commit; nothing persisted.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for stock ledger and sale processing errors."""

    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(LedgerError):
    status_code = 404


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int, line_index: int | None = None):
        details = {"product_id": product_id}
        if line_index is not None:
            details["line_index"] = line_index
        super().__init__(f"Product with ID {product_id} not found", details)


class WarehouseNotFound(NotFoundError):
    def __init__(self, warehouse_id: int):
        super().__init__(f"Warehouse with ID {warehouse_id} not found", {"warehouse_id": warehouse_id})


class CustomerNotFound(NotFoundError):
    def __init__(self, customer_id: int):
        super().__init__(f"Customer with ID {customer_id} not found", {"customer_id": customer_id})


class CategoryNotFound(NotFoundError):
    def __init__(self, category_id: int):
        super().__init__(f"Category with ID {category_id} not found", {"category_id": category_id})


class SaleNotFound(NotFoundError):
    def __init__(self, sale_id: int):
        super().__init__(f"Sale with ID {sale_id} not found", {"sale_id": sale_id})


class InvalidOperationError(LedgerError):
    status_code = 400


class ProductInactive(InvalidOperationError):
    def __init__(self, product_id: int, product_name: str, line_index: int | None = None):
        details = {"product_id": product_id, "product_name": product_name}
        if line_index is not None:
            details["line_index"] = line_index
        super().__init__(f"Product {product_name} is not active", details)


class InsufficientStock(InvalidOperationError):
    def __init__(
        self,
        product_id: int,
        product_name: str,
        available: int,
        requested: int,
        line_index: int | None = None,
    ):
        details = {
            "product_id": product_id,
            "product_name": product_name,
            "available": available,
            "requested": requested,
        }
        if line_index is not None:
            details["line_index"] = line_index
        super().__init__(
            f"Insufficient stock for product {product_name}. "
            f"Available: {available}, Requested: {requested}",
            details,
        )


class NoActiveWarehouse(InvalidOperationError):
    def __init__(self):
        super().__init__("No active warehouse found for sale.")


class ProductInUse(InvalidOperationError):
    def __init__(self, product_id: int):
        super().__init__(
            f"Product with ID {product_id} is referenced by sales or stock movements",
            {"product_id": product_id},
        )


class CustomerInUse(InvalidOperationError):
    def __init__(self, customer_id: int):
        super().__init__(
            f"Customer with ID {customer_id} is referenced by sales",
            {"customer_id": customer_id},
        )


class ConcurrencyConflict(LedgerError):
    status_code = 409
    retryable = True


class TransientStoreFailure(LedgerError):
    status_code = 503
    retryable = True


class OperationCancelled(LedgerError):
    status_code = 409

    def __init__(self, operation: str):
        super().__init__(f"{operation} cancelled before commit", {"cancelled": True})


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
