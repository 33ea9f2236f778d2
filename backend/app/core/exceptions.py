"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationFailedError(AppException):
    """Raised when input is malformed or references foreign records."""

    def __init__(self, message: str, fields: Optional[Dict[str, List[str]]] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"fields": fields or {}}
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """
    Raised for authentication failures.

    reason is one of "missing", "invalid" or "server_error". A server error
    is reported as 500 but never authenticates the caller.
    """

    MISSING = "missing"
    INVALID = "invalid"
    SERVER_ERROR = "server_error"

    def __init__(self, message: str = "Authentication failed", reason: str = INVALID):
        self.reason = reason
        if reason == self.SERVER_ERROR:
            super().__init__(
                message=message,
                error_code="ERR_AUTH_002",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
        else:
            super().__init__(
                message=message,
                error_code="ERR_AUTH_001",
                status_code=status.HTTP_401_UNAUTHORIZED
            )


class ConflictError(AppException):
    """Raised when a status precondition or a unique constraint is violated."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InternalError(AppException):
    """Raised for unexpected storage or transport failures."""

    def __init__(self, message: str = "An internal server error occurred", error_code: str = "ERR_INTERNAL_001"):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


class ShortIdAllocationError(InternalError):
    """Raised when no unique short id could be allocated within the retry cap."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            message=f"Failed to generate a unique Shipment ID after {attempts} attempts.",
            error_code="ERR_INTERNAL_002"
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        },
        headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors, flattened to field-level messages."""
    fields: Dict[str, List[str]] = {}
    for error in exc.errors():
        # Drop the "body"/"path" prefix so keys match payload field names
        loc = [str(part) for part in error.get("loc", ())[1:]] or ["__root__"]
        fields.setdefault(".".join(loc), []).append(error.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Invalid request body",
            "details": {"fields": fields}
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
