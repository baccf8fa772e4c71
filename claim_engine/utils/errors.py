"""
Custom Exceptions
Domain error taxonomy for the claim engine and its HTTP rendering.
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

UNKNOWN_ERROR_MESSAGE = "Unknown error"
DATABASE_ERROR_MESSAGE = "Database error"


class ClaimEngineError(Exception):
    """Base class for errors raised by the claim engine."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "claim_engine_error"

    def __init__(self, message: str = "Claim engine error"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message}


class ValidationError(ClaimEngineError):
    """Raised when input is malformed. Carries a field -> messages map."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation error",
        field_errors: Optional[dict[str, list[str]]] = None,
    ):
        super().__init__(message)
        self.field_errors = field_errors or {}

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["fieldErrors"] = self.field_errors
        return body


class NotFoundError(ClaimEngineError):
    """Raised when a referenced resource is absent for the tenant."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found" if not resource_id else f"{resource} not found: {resource_id}"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class StateConflictError(ClaimEngineError):
    """Raised when an operation is not legal in the resource's current status."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "state_conflict"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.current_status:
            body["currentStatus"] = self.current_status
        if self.details:
            body["details"] = self.details
        return body


class PersistenceError(ClaimEngineError):
    """Raised when the store fails. The message is always generic."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "persistence_error"

    def __init__(self, operation: str = "request"):
        super().__init__(f"Failed to complete {operation}")
        self.operation = operation


class BatchItemError(ClaimEngineError):
    """Isolates one item's failure inside a batch operation."""

    error_code = "batch_item_error"

    def __init__(self, item_key: Optional[str], cause: BaseException):
        super().__init__(describe_error(cause))
        self.item_key = item_key
        self.cause = cause


# =============================================================================
# Helpers
# =============================================================================


def describe_error(exc: BaseException) -> str:
    """
    Return a message that is safe to log or hand back to a caller.

    Domain errors keep their own message, pydantic validation errors are
    flattened to "field: message" pairs, store errors collapse to a fixed
    message and anything else becomes "Unknown error".
    """
    if isinstance(exc, ClaimEngineError):
        return exc.message
    if isinstance(exc, PydanticValidationError):
        parts = []
        for err in exc.errors():
            location = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
        return "Invalid record: " + "; ".join(parts)
    if isinstance(exc, SQLAlchemyError):
        return DATABASE_ERROR_MESSAGE
    return UNKNOWN_ERROR_MESSAGE


def field_errors_from_pydantic(exc: PydanticValidationError) -> dict[str, list[str]]:
    """Convert a pydantic ValidationError into a field -> messages map."""
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "__root__"
        field_errors.setdefault(location, []).append(err.get("msg", "invalid"))
    return field_errors


async def claim_engine_error_handler(request: Request, exc: ClaimEngineError) -> JSONResponse:
    """Render a ClaimEngineError as a structured JSON body."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures in the same shape as ValidationError."""
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "__root__"
        field_errors.setdefault(location, []).append(err.get("msg", "invalid"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ValidationError("Request validation failed", field_errors).to_dict(),
    )
