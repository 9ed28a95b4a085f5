"""Application errors raised by services and rendered by the API layer."""

from decimal import Decimal
from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        details: Any = None,
    ):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or missing input."""

    def __init__(self, message: str = "Validation error", details: Any = None):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST, details)


class UnauthorizedError(AppError):
    """Missing, invalid or expired credential."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized", status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    """Authenticated user lacks the role or ownership for this action."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, "forbidden", status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    """Referenced entity does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    """Duplicate unique field or invalid state transition."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, "conflict", status.HTTP_409_CONFLICT)


class InsufficientBalanceError(AppError):
    """Expense would drive the community balance negative."""

    def __init__(
        self,
        current_balance: Decimal,
        requested_amount: Decimal,
        message: str = "Expense amount exceeds current balance",
    ):
        self.current_balance = current_balance
        self.requested_amount = requested_amount
        self.shortfall = requested_amount - current_balance
        super().__init__(
            message,
            "insufficient_balance",
            status.HTTP_400_BAD_REQUEST,
            {
                "current_balance": str(current_balance),
                "requested_amount": str(requested_amount),
                "shortfall": str(self.shortfall),
            },
        )


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body: Dict[str, Any] = {"code": error.code, "message": error.message}
    if error.details is not None:
        body["details"] = error.details
    return {"error": body}


__all__ = [
    "AppError",
    "ValidationError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "InsufficientBalanceError",
    "error_response",
]
