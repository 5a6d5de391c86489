"""
Custom exceptions for the application.
Project: Supply Ledger (healthcare supplies ERP)

Domain-specific exceptions for centralised error handling.

NOTE: BusinessValidationError is deliberately distinct from pydantic.ValidationError.
- pydantic.ValidationError: input shape/type errors (handled by FastAPI → 422)
- BusinessValidationError: business rule violations detected before any write (our handler → 422)

StoreError is the raw, structured failure reported by the ledger store. Services
classify it into the domain taxonomy (ConflictError, SchemaDriftError,
DependencyUnavailableError) with `classify_store_error`.
"""

from enum import Enum
from typing import Any, Dict, NoReturn, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "BusinessValidationError",
    "ValidationError",       # alias of BusinessValidationError
    "ConflictError",
    "AuthorizationError",
    "SchemaDriftError",
    "DependencyUnavailableError",
    "ReversalInconsistencyError",
    "StoreErrorCode",
    "StoreError",
    "classify_store_error",
    "raise_classified",
]


class AppException(Exception):
    """
    Base exception for the application.

    Every custom exception inherits from this class.

    Attributes:
        status_code: HTTP status code returned to the client
        error_code: Unique error identifier for API consumers
        detail: Human readable message
        extra: Additional data for API consumers
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialise the exception.

        Args:
            detail: Detailed error message
            error_code: Unique identifier (default: the class one)
            extra: Additional data for API consumers (default: None)
        """
        self.detail = detail
        # Use provided error_code or fall back to class-level default
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """Raised when a referenced row does not exist."""

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Resource not found",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Raised for business rule violations detected before any write.

    Inherits from ValueError so that it can be raised from pydantic validators.

    Do NOT confuse with pydantic.ValidationError, which covers the
    shape/format validation of the input payload.

    Examples:
        - "Invalid invoice ID"
        - "Delivery note customer mismatch: ..."
        - "Item 2: product ... is not in the company catalogue"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validation failed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Call AppException.__init__ directly to skip ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias kept for readability at call sites
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Raised for state conflicts.

    Used for foreign key / unique / check violations reported by the store,
    and when an operation cannot run because of the resource's current state
    (e.g. converting a quotation that is already converted).
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "State conflict",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class AuthorizationError(AppException):
    """
    Raised when the actor lacks the capability required by an operation.

    Examples:
        - "You do not have permission to delete invoices"
    """

    status_code: int = 403
    error_code: str = "FORBIDDEN"

    def __init__(
        self,
        detail: str = "Not authorised",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class SchemaDriftError(AppException):
    """
    Raised when the store keeps rejecting a column after the one
    strip-and-retry attempt, or rejects a column that is not optional.
    """

    status_code: int = 409
    error_code: str = "SCHEMA_DRIFT"

    def __init__(
        self,
        detail: str = "Store schema does not match the expected columns",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DependencyUnavailableError(AppException):
    """Raised when a required server-side procedure is missing and no fallback applies."""

    status_code: int = 503
    error_code: str = "DEPENDENCY_UNAVAILABLE"

    def __init__(
        self,
        detail: str = "Required server procedure is not available",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ReversalInconsistencyError(AppException):
    """
    Raised when deleting a payment cannot reverse an allocation on its invoice.

    Always fatal to the whole delete: the payment row is left in place.
    """

    status_code: int = 500
    error_code: str = "REVERSAL_INCONSISTENCY"

    def __init__(
        self,
        detail: str = "Payment reversal left the invoice inconsistent",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


# ------------------------------------------------------------
# Store errors
# ------------------------------------------------------------
class StoreErrorCode(str, Enum):
    """Structured failure codes reported by the ledger store."""
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    UNIQUE_VIOLATION = "UNIQUE_VIOLATION"
    CHECK_VIOLATION = "CHECK_VIOLATION"
    NOT_NULL_VIOLATION = "NOT_NULL_VIOLATION"
    UNKNOWN_COLUMN = "UNKNOWN_COLUMN"
    UNDEFINED_TABLE = "UNDEFINED_TABLE"
    PROCEDURE_NOT_FOUND = "PROCEDURE_NOT_FOUND"
    PROCEDURE_FAILED = "PROCEDURE_FAILED"
    UNKNOWN = "UNKNOWN"


CONSTRAINT_CODES = frozenset({
    StoreErrorCode.FOREIGN_KEY_VIOLATION,
    StoreErrorCode.UNIQUE_VIOLATION,
    StoreErrorCode.CHECK_VIOLATION,
    StoreErrorCode.NOT_NULL_VIOLATION,
})


class StoreError(AppException):
    """
    Structured failure reported by a LedgerStore operation.

    Attributes:
        code: StoreErrorCode of the failure
        column: Offending column, when the store can identify it
        hint: Optional remediation hint from the store
        details: Raw driver detail message
    """

    status_code: int = 500
    error_code: str = "STORE_ERROR"

    def __init__(
        self,
        detail: str,
        code: StoreErrorCode = StoreErrorCode.UNKNOWN,
        column: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.code = code
        self.column = column
        self.hint = hint
        self.details = details
        super().__init__(
            detail,
            extra={"code": code.value, "column": column, "hint": hint},
        )

    @property
    def is_constraint_violation(self) -> bool:
        """True for foreign key, unique, check and not-null violations."""
        return self.code in CONSTRAINT_CODES

    def describe(self) -> str:
        """One-line diagnostic used in log messages."""
        parts = [f"code={self.code.value}", f"message={self.detail}"]
        if self.column:
            parts.append(f"column={self.column}")
        if self.details:
            parts.append(f"details={self.details}")
        if self.hint:
            parts.append(f"hint={self.hint}")
        return " ".join(parts)


def classify_store_error(exc: StoreError, context: str) -> AppException:
    """
    Map a raw store failure onto the domain taxonomy.

    Args:
        exc: The store failure
        context: Short description of the step that failed, used in the message

    Returns:
        The domain exception to raise (the caller raises it `from exc`)
    """
    extra = {"store_code": exc.code.value, "column": exc.column}
    if exc.is_constraint_violation:
        return ConflictError(f"{context}: {exc.detail}", error_code=exc.code.value, extra=extra)
    if exc.code in (StoreErrorCode.UNKNOWN_COLUMN, StoreErrorCode.UNDEFINED_TABLE):
        return SchemaDriftError(f"{context}: {exc.detail}", extra=extra)
    if exc.code == StoreErrorCode.PROCEDURE_NOT_FOUND:
        return DependencyUnavailableError(f"{context}: {exc.detail}", extra=extra)
    return exc


def raise_classified(exc: StoreError, context: str) -> NoReturn:
    """
    Raise the domain exception for a store failure, chained to it.

    Store failures with no domain counterpart are re-raised unchanged.
    """
    classified = classify_store_error(exc, context)
    if classified is exc:
        raise exc
    raise classified from exc
