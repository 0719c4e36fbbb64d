"""
Exceptions and exception handlers for the Augmentations API.

Two families live here:
- Startup errors (ConfigurationError, DuplicateRegistrationError) raised while
  the application is being composed. They abort startup and are never
  translated into HTTP responses.
- Request errors (AugmentationsAPIException and subclasses) raised by
  services and routers and rendered as structured JSON responses.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


# ============================================================================
# Startup Errors
# ============================================================================


class ConfigurationError(RuntimeError):
    """Raised when a required configuration value is missing or invalid."""

    def __init__(self, key: str, reason: str = "is missing or empty"):
        super().__init__(f"Required configuration value '{key}' {reason}")
        self.key = key
        self.reason = reason


class DuplicateRegistrationError(RuntimeError):
    """Raised when a service type is registered more than once."""

    def __init__(self, service_type: Any):
        name = getattr(service_type, "__name__", None) or repr(service_type)
        super().__init__(
            f"Service '{name}' is already registered; each registrar must run only once"
        )
        self.service_type = service_type


# ============================================================================
# Request Errors
# ============================================================================


class AugmentationsAPIException(Exception):
    """
    Base exception for request-level failures.

    Provides structured error responses with an optional suggestion on how
    to fix the request.
    """

    def __init__(
        self,
        message: str,
        code: str = "AUGMENTATIONS_API_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response dict."""
        result: Dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


class AugmentationNotFoundError(AugmentationsAPIException):
    """Raised when an augmentation ID doesn't exist."""

    def __init__(self, augmentation_id: int):
        super().__init__(
            message=f"Augmentation not found: {augmentation_id}",
            code="AUGMENTATION_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            suggestion="List augmentations with GET /api/augmentations to find a valid id",
            details={"id": augmentation_id}
        )


class DuplicateAugmentationError(AugmentationsAPIException):
    """Raised when an augmentation name is already taken."""

    def __init__(self, name: str):
        super().__init__(
            message=f"Augmentation already exists: {name}",
            code="AUGMENTATION_EXISTS",
            status_code=status.HTTP_409_CONFLICT,
            suggestion="Use PUT /api/augmentations/{id} to change an existing augmentation",
            details={"name": name}
        )


class IdentityOperationError(AugmentationsAPIException):
    """Raised when a user cannot be created."""

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__(
            message="User registration failed",
            code="IDENTITY_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"errors": errors}
        )
        self.errors = errors


class NotAuthenticatedError(AugmentationsAPIException):
    """Raised when an endpoint that needs a user is called anonymously."""

    def __init__(self, challenge_scheme: str = "Bearer"):
        super().__init__(
            message="Not authenticated",
            code="UNAUTHORIZED",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
        self.challenge_scheme = challenge_scheme


class InvalidCredentialsError(AugmentationsAPIException):
    """Raised when a login attempt fails."""

    def __init__(self):
        super().__init__(
            message="Invalid username or password",
            code="INVALID_CREDENTIALS",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class InvalidFileTypeError(AugmentationsAPIException):
    """Raised when an uploaded file is not a CSV file."""

    def __init__(self, filename: Optional[str], content_type: Optional[str]):
        super().__init__(
            message=f"Invalid file type: {filename}",
            code="INVALID_FILE_TYPE",
            status_code=status.HTTP_400_BAD_REQUEST,
            suggestion="Upload a .csv file sent with the text/csv content type",
            details={"filename": filename, "content_type": content_type}
        )


class CsvImportError(AugmentationsAPIException):
    """Raised when CSV content cannot be turned into augmentations."""

    def __init__(self, error: str, row: Optional[int] = None):
        details: Dict[str, Any] = {"error": error}
        if row is not None:
            details["row"] = row
        super().__init__(
            message=f"Failed to import CSV: {error}",
            code="CSV_IMPORT_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            suggestion="Columns must be: name, description, type, activation, energy_consumption",
            details=details
        )


# ============================================================================
# Exception Handlers
# ============================================================================


async def augmentations_api_exception_handler(
    request: Request,
    exc: AugmentationsAPIException
) -> JSONResponse:
    """Convert AugmentationsAPIException to a JSON response."""
    logger.warning(
        "request_error",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code
    )
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": getattr(exc, "challenge_scheme", "Bearer")}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers
    )


def _field_name(loc: tuple) -> str:
    """Turn a pydantic error location into the field name the client sent."""
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header")]
    return ".".join(parts) or "body"


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors.

    Returns 400 with the failing fields:

        {"detail": "Validation error", "code": "VALIDATION_ERROR",
         "errors": {"userName": ["userName is required"]}}
    """
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        field = _field_name(tuple(error.get("loc", ())))
        if error.get("type") == "missing":
            message = f"{field} is required"
        else:
            message = error.get("msg", "Invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)

    logger.warning("validation_error", path=request.url.path, errors=errors)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": errors,
        }
    )
