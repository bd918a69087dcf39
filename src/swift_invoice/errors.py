"""Exception types shared by services and routers."""
from __future__ import annotations

from typing import Any, Optional

import pendulum


class SwiftInvoiceError(Exception):
    """Base exception for all application errors.

    Attributes:
        message: Human-readable error message
        error_code: Application-specific error code for categorization
        details: Additional error context
        timestamp: When the error occurred
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.timestamp = pendulum.now("UTC").isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class NotFoundError(SwiftInvoiceError):
    """Raised when a document does not exist or belongs to another user."""

    status_code = 404

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            f"{collection}/{document_id} not found",
            error_code="not-found",
            details={"collection": collection, "id": document_id},
        )


class ValidationError(SwiftInvoiceError):
    status_code = 422


class StoreError(SwiftInvoiceError):
    """The document store failed to read or write."""

    status_code = 503


class TransactionConflictError(StoreError):
    """A transaction kept conflicting with concurrent writers until retries ran out."""

    status_code = 409

    def __init__(self, attempts: int):
        super().__init__(
            f"Transaction aborted after {attempts} conflicting attempts",
            error_code="transaction-conflict",
            details={"attempts": attempts},
        )


class AuthError(SwiftInvoiceError):
    """Authentication failure carrying a stable code and a localized message."""

    STATUS_BY_CODE = {
        "email-already-in-use": 409,
        "invalid-email": 400,
        "weak-password": 400,
        "too-many-requests": 429,
        "user-disabled": 403,
    }

    def __init__(self, code: str, language: str = "ES"):
        from .i18n import auth_message

        super().__init__(auth_message(code, language), error_code=code)
        self.code = code
        self.status_code = self.STATUS_BY_CODE.get(code, 401)
