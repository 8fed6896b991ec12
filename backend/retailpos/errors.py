# Overview: Error taxonomy shared by services and routes.

"""
Every per-request failure maps to one of these exceptions. Routes convert
them to a JSON body of the form {"error": ..., "code": ...} at the handler
boundary; anything outside the taxonomy becomes a 500 SERVER_ERROR.
"""

from __future__ import annotations

from flask import jsonify


class PosError(Exception):
    """Base class for errors that carry an HTTP status and a client code."""

    status_code = 400
    default_code = "APPLICATION_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict | list | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError):
    """400-level input problem."""
    default_code = "VALIDATION_ERROR"


class StockError(PosError):
    """Product missing, inactive, or not enough stock on hand."""
    default_code = "STOCK_ERROR"


class PaymentError(PosError):
    """Payment entries do not reconcile to the sale total."""
    default_code = "PAYMENT_ERROR"


class RefundError(PosError):
    """Refund request references unknown lines or too many units."""
    default_code = "REFUND_ERROR"


class InventoryError(PosError):
    """Adjustment rejected (negative result, unknown type)."""
    default_code = "INVENTORY_ERROR"


class SaleStateError(PosError):
    """Sale is in a status that does not allow the requested transition."""
    default_code = "INVALID_STATUS"


class AuthError(PosError):
    status_code = 401
    default_code = "AUTH_REQUIRED"


class PermissionDeniedError(PosError):
    status_code = 403
    default_code = "INSUFFICIENT_PERMISSIONS"


class NotFoundError(PosError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(PosError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    default_code = "DUPLICATE_RESOURCE"


def error_response(exc: PosError):
    return jsonify(exc.to_dict()), exc.status_code


def server_error_response():
    return jsonify({"error": "Internal server error", "code": "SERVER_ERROR"}), 500
