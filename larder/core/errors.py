"""Error taxonomy for inventory and shopping operations.

Lower-level services raise these exceptions only where the caller has no
legitimate fallback. Unit conversion failures are values (see
``larder.services.unit_service.Unconvertible``) until a call site decides the
operation must hard-fail, at which point it raises ``UnconvertibleUnitError``.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCategory(Enum):
    """Categories of errors surfaced to API callers."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INSUFFICIENT_STOCK = "insufficient_stock"
    UNCONVERTIBLE_UNITS = "unconvertible_units"
    UNKNOWN = "unknown"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_INSUFFICIENT_STOCK = "ERR_INSUFFICIENT_STOCK"
    ERR_UNCONVERTIBLE_UNITS = "ERR_UNCONVERTIBLE_UNITS"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response body."""

    code: str
    message: str
    details: dict[str, Any] | list[dict[str, Any]] | None = None


class LarderError(Exception):
    """Base class for domain errors with an HTTP mapping."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    code: str = ErrorCode.ERR_UNKNOWN
    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailedError(LarderError):
    """Input was malformed or out of range; raised before any mutation."""

    category = ErrorCategory.VALIDATION
    code = ErrorCode.ERR_VALIDATION_FAILED
    status_code = 400

    def __init__(self, message: str, *, field: str | None = None, **extra: Any) -> None:
        details: dict[str, Any] = {**extra}
        if field:
            details["field"] = field
        super().__init__(message, details=details or None)
        self.field = field


class NotFoundError(LarderError):
    """A referenced record does not exist."""

    category = ErrorCategory.NOT_FOUND
    code = ErrorCode.ERR_NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, record_id: str | None = None) -> None:
        message = f"{resource} not found" if record_id is None else f"{resource} not found: {record_id}"
        super().__init__(message, details={"resource": resource, "id": record_id})
        self.resource = resource
        self.record_id = record_id


class ConflictError(LarderError):
    """The operation collides with existing state (duplicates, dependencies, completed lists)."""

    category = ErrorCategory.CONFLICT
    code = ErrorCode.ERR_CONFLICT
    status_code = 409

    def __init__(self, message: str, *, dependency: str | None = None, **extra: Any) -> None:
        details: dict[str, Any] = {**extra}
        if dependency:
            details["dependency"] = dependency
        super().__init__(message, details=details or None)
        self.dependency = dependency


class InsufficientStockError(LarderError):
    """A specific batch cannot satisfy the requested quantity."""

    category = ErrorCategory.INSUFFICIENT_STOCK
    code = ErrorCode.ERR_INSUFFICIENT_STOCK
    status_code = 400

    def __init__(self, *, available: float, requested: float, unit: str) -> None:
        self.available = available
        self.requested = requested
        self.unit = unit
        self.shortfall = round(requested - available, 4)
        super().__init__(
            f"Insufficient stock. Available: {available} {unit}, requested: {requested} {unit} "
            f"(short by {self.shortfall} {unit})",
            details={
                "available": available,
                "requested": requested,
                "shortfall": self.shortfall,
                "unit": unit,
            },
        )


class UnconvertibleUnitError(LarderError):
    """A quantity had to be converted but the units are unrelated."""

    category = ErrorCategory.UNCONVERTIBLE_UNITS
    code = ErrorCode.ERR_UNCONVERTIBLE_UNITS
    status_code = 400

    def __init__(self, from_unit: str, to_unit: str) -> None:
        super().__init__(
            f"Cannot convert {from_unit} to {to_unit}",
            details={"from_unit": from_unit, "to_unit": to_unit},
        )
        self.from_unit = from_unit
        self.to_unit = to_unit


def to_error_response(exception: Exception) -> tuple[int, ErrorResponse]:
    """Map an exception to an HTTP status code and a structured response.

    Args:
        exception: The exception raised while handling a request

    Returns:
        Tuple of (status_code, ErrorResponse)
    """
    if isinstance(exception, LarderError):
        return exception.status_code, ErrorResponse(
            code=exception.code,
            message=exception.message,
            details=exception.details,
        )

    return 500, ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
    )
