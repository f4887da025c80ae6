# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
Every engine failure is raised as a GrocerError subclass carrying a human
message, a details dict for the caller, and the HTTP status the route layer
answers with. Validation errors are raised before any mutation; anything
raised after mutation began aborts the whole transaction.
"""

from __future__ import annotations


class GrocerError(Exception):
    """Base class for domain errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(GrocerError):
    """400-level input problem."""


class EmptySale(ValidationError):
    def __init__(self, message: str = "Sale must have at least one item"):
        super().__init__(message)


class InvalidDiscount(ValidationError):
    pass


class NoOpAdjustment(ValidationError):
    pass


class NotFound(GrocerError):
    status_code = 404


class ProductNotFound(NotFound):
    def __init__(self, product_id: int):
        super().__init__(
            f"Product with ID {product_id} not found",
            details={"product_id": product_id},
        )


class SaleNotFound(NotFound):
    def __init__(self, sale_id: int):
        super().__init__(f"Sale with ID {sale_id} not found", details={"sale_id": sale_id})


class CategoryNotFound(NotFound):
    def __init__(self, category_id: int):
        super().__init__(
            f"Category with ID {category_id} not found",
            details={"category_id": category_id},
        )


class TenantMismatch(GrocerError):
    """
    Cross-tenant access attempt.

    The message names only the identifier the caller supplied, never the
    foreign entity's name or owner.
    """
    status_code = 403

    def __init__(self, resource: str, resource_id: int | None = None):
        super().__init__(
            f"You do not have permission to access this {resource}",
            details={"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class TenantContextMissing(GrocerError):
    status_code = 403

    def __init__(self, message: str = "Tenant context is required for this operation"):
        super().__init__(message)


class ProductInactive(GrocerError):
    status_code = 409

    def __init__(self, product_id: int, product_name: str):
        super().__init__(
            f'Product "{product_name}" is not active',
            details={"product_id": product_id, "product_name": product_name},
        )


class InsufficientStock(GrocerError):
    status_code = 409

    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f'Insufficient stock for product "{product_name}". '
            f"Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConflictError(GrocerError):
    """409-level business rule conflict (duplicate SKU, barcode, category name)."""
    status_code = 409


class DuplicateIdentifier(ConflictError):
    pass


class StockBusy(GrocerError):
    status_code = 503

    def __init__(self, keys: list):
        super().__init__(
            "Stock is being updated by another request, please retry",
            details={"locks": [f"{kind}:{key}" for kind, key in keys]},
        )
