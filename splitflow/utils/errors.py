"""Custom exception hierarchy for the SplitFlow API."""

from __future__ import annotations


class AppError(Exception):
    """Base application error with a stable machine-readable code."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Serialize the error in the API standard shape."""
        return {"error": self.message, "code": self.code}


class NotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str) -> None:
        super().__init__(message=f"{resource} not found", code="NOT_FOUND", status_code=404)


class ForbiddenError(AppError):
    """Raised when the user lacks permission for the action."""

    def __init__(self, reason: str = "You don't have permission") -> None:
        super().__init__(message=reason, code="FORBIDDEN", status_code=403)


class BadRequestError(AppError):
    """Raised when a request breaks a business rule (amount, capacity, ledger)."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="BAD_REQUEST", status_code=400)


class ConflictError(AppError):
    """Raised on duplicate/conflicting operations."""

    def __init__(self, reason: str, code: str = "CONFLICT") -> None:
        super().__init__(message=reason, code=code, status_code=409)


class SpendingFinalizedError(ConflictError):
    """Raised when a vote targets a spending that is already approved or rejected."""

    def __init__(self, status: str) -> None:
        if status == "approved":
            reason = "This spending has already been fully approved"
        else:
            reason = "This spending has already been rejected"
        super().__init__(reason, code="SPENDING_FINALIZED")
        self.status = status


class ConcurrentUpdateError(ConflictError):
    """Raised when a spending changed between read and write."""

    def __init__(self) -> None:
        super().__init__(
            "Spending was updated by another request, please retry",
            code="CONCURRENT_UPDATE",
        )


class UnauthorizedError(AppError):
    """Raised when the caller is not authenticated."""

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(message=reason, code="UNAUTHORIZED", status_code=401)


class InvalidInputError(AppError):
    """Raised for request payload or parameter validation issues."""

    def __init__(self, reason: str) -> None:
        super().__init__(message=reason, code="INVALID_INPUT", status_code=422)
