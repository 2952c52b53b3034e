"""Error classification for ledger and reward operations."""

from enum import Enum

from pydantic import BaseModel


class ErrorCategory(Enum):
    """Categories of business failures returned by service operations."""

    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Lookup errors
    ERR_RECORD_NOT_FOUND = "ERR_RECORD_NOT_FOUND"
    ERR_ACCOUNT_NOT_FOUND = "ERR_ACCOUNT_NOT_FOUND"

    # Money errors
    ERR_INVALID_AMOUNT = "ERR_INVALID_AMOUNT"
    ERR_INSUFFICIENT_BALANCE = "ERR_INSUFFICIENT_BALANCE"

    # Store errors
    ERR_CONCURRENCY_CONFLICT = "ERR_CONCURRENCY_CONFLICT"
    ERR_STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_CATEGORY_HTTP_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.VALIDATION_ERROR: 400,
    ErrorCategory.INSUFFICIENT_BALANCE: 409,
    ErrorCategory.CONCURRENCY_CONFLICT: 409,
    ErrorCategory.UNKNOWN: 500,
}


def http_status_for(category: ErrorCategory | None) -> int:
    """Return the HTTP status code used to report a failed result of this category."""
    if category is None:
        return 500
    return _CATEGORY_HTTP_STATUS[category]


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an unexpected exception and return a structured response with recovery suggestions.

    Expected business failures never reach this function; services report them as
    failed results. This covers what escapes a service: missing rows, bad input and
    store outages.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    error_str = str(exception).lower()

    if isinstance(exception, KeyError) or "not found" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_RECORD_NOT_FOUND,
            message="The requested record does not exist.",
            suggestion="Check the id and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ValueError) and ("amount" in error_str or "decimal" in error_str):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_AMOUNT,
            message="The amount is not a valid currency value.",
            suggestion="Use a positive number with at most two decimal places.",
            severity=ErrorSeverity.LOW,
        )

    if "insufficient balance" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_INSUFFICIENT_BALANCE,
            message="The account does not hold enough money for this operation.",
            suggestion="Lower the amount or pick another account.",
            severity=ErrorSeverity.LOW,
        )

    if "unique constraint" in error_str or "database is locked" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_CONCURRENCY_CONFLICT,
            message="Another update to the same record was in progress.",
            suggestion="Retry the operation.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, RuntimeError) and "failed to" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_STORE_UNAVAILABLE,
            message="The ledger store could not complete the request.",
            suggestion="Please try again later.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )


_CODE_HTTP_STATUS: dict[str, int] = {
    ErrorCode.ERR_RECORD_NOT_FOUND: 404,
    ErrorCode.ERR_ACCOUNT_NOT_FOUND: 404,
    ErrorCode.ERR_INVALID_AMOUNT: 400,
    ErrorCode.ERR_INSUFFICIENT_BALANCE: 409,
    ErrorCode.ERR_CONCURRENCY_CONFLICT: 409,
}


def http_status_for_code(code: str) -> int:
    """Return the HTTP status code used to report a classified error."""
    return _CODE_HTTP_STATUS.get(code, 500)
