"""Exceptions raised by the shop services.

Every error carries the HTTP status it maps to; `main.py` turns them into
`{"success": false, "message": ..., "errors": [...]}` responses.
"""
from typing import List, Optional


class ShopError(Exception):
    """Base exception for all shop errors."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class ValidationError(ShopError):
    """Raised when input is missing or malformed."""

    status_code = 400


class NotFoundError(ShopError):
    """Raised when a referenced user, product, category, address or order is absent."""

    status_code = 404


class AuthenticationError(ShopError):
    """Raised when a credential is missing, invalid or expired."""

    status_code = 401


class PermissionDeniedError(ShopError):
    status_code = 403


class ConflictError(ShopError):
    """Raised when a unique field is already taken or a concurrent write won."""

    status_code = 409


class BusinessRuleError(ShopError):
    status_code = 400


class EmptyCartError(BusinessRuleError):
    def __init__(self):
        super().__init__("Cart is empty")


class AmountMismatchError(BusinessRuleError):
    def __init__(self, provided: float, calculated: float):
        self.provided = provided
        self.calculated = calculated
        super().__init__(
            "Total amount mismatch",
            errors=[f"provided {provided}, calculated {calculated}"],
        )


class DuplicateReviewError(BusinessRuleError):
    def __init__(self):
        super().__init__("You have already reviewed this product")


class InvalidTransitionError(BusinessRuleError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}")


class PaymentVerificationError(ShopError):
    status_code = 400

    def __init__(self, reason: Optional[str] = None):
        super().__init__("Payment verification failed", errors=[reason] if reason else None)


class GatewayError(ShopError):
    """Raised when the payment gateway call fails."""

    status_code = 502
