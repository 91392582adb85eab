# Overview: Error taxonomy shared by services and routes.

"""
Every business-rule failure is raised as a ShopError subclass carrying its HTTP
status. Routes translate them with error_response(); anything else is an
unexpected failure and is logged and reported as a generic 500.
"""

from __future__ import annotations


class ShopError(Exception):
    """Base class for expected, client-visible failures."""
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


class ValidationError(ShopError, ValueError):
    """Malformed or missing request fields."""
    status_code = 422


class NotFoundError(ShopError):
    status_code = 404


class ConflictError(ShopError):
    """Duplicate unique key or delete blocked by a reference."""
    status_code = 409


class InsufficientStockError(ShopError):
    """Stock would go negative. details: product_id, name, required, available."""
    status_code = 422


class ConfigurationError(ShopError):
    """Composite product is missing a usable component mapping."""
    status_code = 422


class CreditError(ShopError):
    """Credit rule violated (over-payment, not a credit sale, bad terms)."""
    status_code = 422


class AuthError(ShopError):
    status_code = 401


class PermissionDeniedError(ShopError):
    status_code = 403


class TooManyAttemptsError(ShopError):
    status_code = 429


def error_response(exc: ShopError):
    return exc.to_dict(), exc.status_code
