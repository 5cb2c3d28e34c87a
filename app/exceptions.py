"""
Custom Exception Classes for eMineral Pass

This module defines the error taxonomy for the record lifecycle and
verification service. Every exception carries an HTTP status code and a
machine-readable error code so the global handlers can turn it into the
uniform ``{"success": false, "error": ...}`` response body.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned alongside error messages."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    AUTH_FAILED = "AUTH_FAILED"
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RECORD_NOT_FOUND = "RESOURCE_RECORD_NOT_FOUND"
    RECORD_NOT_OWNED = "RECORD_NOT_OWNED"

    VALIDATION_FAILED = "VALIDATION_FAILED"

    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    PUBLIC_TOKEN_EXHAUSTED = "PUBLIC_TOKEN_EXHAUSTED"
    STORAGE_FAILED = "STORAGE_FAILED"
    ARTIFACT_GENERATION_FAILED = "ARTIFACT_GENERATION_FAILED"


class EMineralError(Exception):
    """Base exception class for all eMineral Pass exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(EMineralError):
    """Raised when the caller's identity cannot be verified"""

    def __init__(self, message: str = "Authentication failed", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            error_code=ErrorCode.AUTH_FAILED,
        )


class InvalidTokenError(AuthenticationError):
    """Raised when a bearer token is invalid or expired"""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message=message)
        self.error_code = ErrorCode.AUTH_INVALID_TOKEN


class OwnershipError(EMineralError):
    """Raised when a caller tries to mutate a record they do not own.

    Only the delete and scan-history paths raise this; reads answer
    RecordNotFoundError instead so existence is not disclosed.
    """

    def __init__(self, record_id: str | None = None):
        super().__init__(
            message="Unauthorized",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"record_id": record_id} if record_id else {},
            error_code=ErrorCode.RECORD_NOT_OWNED,
        )


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(EMineralError):
    """Base class for resource not found errors"""

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
            error_code=ErrorCode.RESOURCE_NOT_FOUND,
        )


class RecordNotFoundError(ResourceNotFoundError):
    """Raised when a record id or public token does not resolve"""

    def __init__(self, identifier: Any | None = None):
        super().__init__(resource_type="Record", resource_id=identifier)
        self.error_code = ErrorCode.RECORD_NOT_FOUND


class StoredObjectNotFoundError(ResourceNotFoundError):
    """Raised when a blob storage key does not exist"""

    def __init__(self, key: str):
        super().__init__(resource_type="Object", resource_id=key)


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(EMineralError):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=error_details,
            error_code=ErrorCode.VALIDATION_FAILED,
        )


# ============================================================================
# Persistence, Storage & Artifact Exceptions
# ============================================================================


class PersistenceError(EMineralError):
    """Raised when a row insert, update or delete fails"""

    def __init__(self, message: str = "A database error occurred", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
            error_code=ErrorCode.PERSISTENCE_FAILED,
        )


class PublicTokenExhaustedError(PersistenceError):
    """Raised when every public token attempt collided with an existing one"""

    def __init__(self, attempts: int):
        super().__init__(
            message=f"Could not mint a unique public token after {attempts} attempts",
            operation="create_record",
        )
        self.details["attempts"] = attempts
        self.error_code = ErrorCode.PUBLIC_TOKEN_EXHAUSTED


class StorageError(EMineralError):
    """Raised when the blob store rejects a read or write"""

    def __init__(self, message: str = "Storage operation failed", key: str | None = None):
        details = {"key": key} if key else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
            error_code=ErrorCode.STORAGE_FAILED,
        )


class SignedUrlError(EMineralError):
    """Raised when a signed storage URL is missing, forged or expired"""

    def __init__(self, message: str = "Invalid or expired link"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code=ErrorCode.AUTH_PERMISSION_DENIED,
        )


class ArtifactGenerationError(EMineralError):
    """Raised inside QR/PDF generation; never escapes record creation"""

    def __init__(self, artifact: str, message: str):
        super().__init__(
            message=f"Failed to generate {artifact}: {message}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"artifact": artifact},
            error_code=ErrorCode.ARTIFACT_GENERATION_FAILED,
        )
        self.artifact = artifact
