"""
Error taxonomy for the bio-link API.

Every error the services raise is a ``BioLinkException`` carrying a stable
``code`` and an HTTP status. ``biolink_exception_handler`` turns them into
JSON bodies with an ``error`` field.
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class BioLinkException(Exception):
    """
    Base exception for the service.

    ``message`` is safe to show to callers. ``diagnostic`` keeps the
    underlying driver/upstream message for the logs only.
    """

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        diagnostic: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.diagnostic = diagnostic

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Profile Exceptions
# =============================================================================

class InvalidHandleError(BioLinkException):
    """Raised when a handle is malformed or reserved."""

    def __init__(self, handle: Any):
        super().__init__(
            message="Invalid username (2-30 chars, letters/numbers/._-)",
            code="INVALID_HANDLE",
            status_code=400,
            details={"username": handle if isinstance(handle, str) else None},
        )


class InvalidPayloadError(BioLinkException):
    """Raised when the profile body is not a storable JSON object."""

    def __init__(self, reason: str = "Profile data must be a JSON object", diagnostic: Optional[str] = None):
        super().__init__(
            message=reason,
            code="INVALID_PAYLOAD",
            status_code=400,
            diagnostic=diagnostic,
        )


class ProfileNotFoundError(BioLinkException):
    """Raised when no profile exists for a handle."""

    def __init__(self, handle: str):
        super().__init__(
            message="Profile not found",
            code="NOT_FOUND",
            status_code=404,
            details={"username": handle},
        )


# =============================================================================
# Store Exceptions
# =============================================================================

class StoreUnavailableError(BioLinkException):
    """Raised when the document store can't be reached within the timeouts."""

    def __init__(self, diagnostic: Optional[str] = None):
        super().__init__(
            message="Database unavailable",
            code="STORE_UNAVAILABLE",
            status_code=503,
            diagnostic=diagnostic,
        )


class StoreError(BioLinkException):
    """Raised when a read or write against the store fails."""

    def __init__(self, diagnostic: Optional[str] = None):
        super().__init__(
            message="Database error",
            code="STORE_ERROR",
            status_code=500,
            diagnostic=diagnostic,
        )


# =============================================================================
# Upload Exceptions
# =============================================================================

class NoFileError(BioLinkException):
    """Raised when an upload request carries no file part."""

    def __init__(self):
        super().__init__(
            message="No file uploaded",
            code="NO_FILE",
            status_code=400,
        )


class InvalidFileTypeError(BioLinkException):
    """Raised when the declared mime type isn't allowed for the upload purpose."""

    def __init__(self, purpose: str, mime_type: Optional[str]):
        super().__init__(
            message=f"File type not allowed for {purpose}: {mime_type or 'unknown'}",
            code="INVALID_FILE_TYPE",
            status_code=400,
            details={"purpose": purpose, "mime_type": mime_type},
        )


class PayloadTooLargeError(BioLinkException):
    """Raised when an upload stream exceeds the purpose's byte limit."""

    def __init__(self, purpose: str, max_bytes: int):
        super().__init__(
            message=f"File too large (max: {max_bytes // (1024 * 1024)}MB)",
            code="PAYLOAD_TOO_LARGE",
            status_code=413,
            details={"purpose": purpose, "max_bytes": max_bytes},
        )


class UploadFailedError(BioLinkException):
    """Raised when the transfer to media storage doesn't complete."""

    def __init__(self, diagnostic: Optional[str] = None):
        super().__init__(
            message="Upload failed",
            code="UPLOAD_FAILED",
            status_code=500,
            diagnostic=diagnostic,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def biolink_exception_handler(
    request: Request,
    exc: BioLinkException
) -> JSONResponse:
    """Convert BioLinkException to JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Report request validation failures as 400 INVALID_PAYLOAD."""
    error = InvalidPayloadError("Invalid request")
    error.details = {"errors": [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]}
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
