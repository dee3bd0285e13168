"""
Custom Exception Classes for the Caption Gallery API.

This module defines the exception hierarchy used across the gallery service.
Using specific exceptions for each failure scenario keeps error logging precise
and lets the error handling middleware render consistent responses.

Key Components:
- `GalleryAPIException`: The base exception class from which every other custom
  exception in this module inherits. It carries a message, an error code and an
  optional details dictionary.
- Store errors (`StoreReadError`, `StoreWriteError`): raised by the caption store
  when a read or write against the tabular store fails. Nothing is retried.
- `CaptionCreationError`: raised when one of the two sequential writes of the
  caption creation form fails. It records which stage failed and, when the
  caption insert fails, the id of the image row left behind.
- `ValidationError`, `AuthenticationError`, `IdentityProviderError`: input,
  session and OAuth failures.
- `to_http_exception`: maps a `GalleryAPIException` to FastAPI's
  `HTTPException` using the error code.

Architectural Design:
- Hierarchy of Exceptions: everything derives from `GalleryAPIException`, so
  callers can catch a specific failure or the whole family.
- Rich Error Information: every exception carries an `error_code` and a
  `details` dictionary that is safe to expose to clients.
- Centralized Error Mapping: status codes are decided in one place.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class GalleryAPIException(Exception):
    """Base exception class for the Caption Gallery API"""

    def __init__(
        self,
        message: str,
        error_code: str = "GALLERY_API_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODE_MAP.get(self.error_code, 500)


class StoreReadError(GalleryAPIException):
    """Raised when a read from the caption store fails"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Store read '{operation}' failed: {reason}",
            "STORE_READ_ERROR",
            {"operation": operation, "reason": reason},
        )


class StoreWriteError(GalleryAPIException):
    """Raised when a write to the caption store fails"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Store write '{operation}' failed: {reason}",
            "STORE_WRITE_ERROR",
            {"operation": operation, "reason": reason},
        )


class CaptionCreationError(GalleryAPIException):
    """Raised when the image or caption insert of a new caption fails"""

    def __init__(
        self, stage: str, reason: str, orphaned_image_id: Optional[str] = None
    ):
        details = {"stage": stage, "reason": reason}
        if orphaned_image_id:
            details["orphaned_image_id"] = orphaned_image_id
        super().__init__(
            f"Could not save the {stage}: {reason}",
            "CAPTION_CREATE_FAILED",
            details,
        )
        self.stage = stage
        self.orphaned_image_id = orphaned_image_id


class DatabaseConnectionError(GalleryAPIException):
    """Raised when database setup or health operations fail"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            "DATABASE_ERROR",
            {"operation": operation, "reason": reason},
        )


class ValidationError(GalleryAPIException):
    """Raised when input validation fails"""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class AuthenticationError(GalleryAPIException):
    """Raised when authentication fails"""

    def __init__(self, reason: str):
        super().__init__(
            f"Authentication failed: {reason}",
            "AUTHENTICATION_ERROR",
            {"reason": reason},
        )


class IdentityProviderError(GalleryAPIException):
    """Raised when the OAuth identity provider rejects or fails a request"""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            f"Identity provider '{provider}' error: {reason}",
            "IDENTITY_PROVIDER_ERROR",
            {"provider": provider, "reason": reason},
        )


STATUS_CODE_MAP = {
    "VALIDATION_ERROR": 400,
    "AUTHENTICATION_ERROR": 401,
    "STORE_READ_ERROR": 503,
    "STORE_WRITE_ERROR": 503,
    "CAPTION_CREATE_FAILED": 502,
    "IDENTITY_PROVIDER_ERROR": 502,
    "DATABASE_ERROR": 500,
}


def to_http_exception(exc: GalleryAPIException) -> HTTPException:
    """Convert GalleryAPIException to FastAPI HTTPException"""
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )
