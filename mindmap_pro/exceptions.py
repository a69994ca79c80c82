"""Custom exception hierarchy for MindMap Pro."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Not found
    MINDMAP_NOT_FOUND = "MINDMAP_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    SHARE_NOT_FOUND = "SHARE_NOT_FOUND"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_PASSWORD = "INVALID_PASSWORD"

    # Auth
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"

    # Conflicts
    CONFLICT = "CONFLICT"
    SELF_SHARE = "SELF_SHARE"
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"

    # Store
    STORAGE_ERROR = "STORAGE_ERROR"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class MindmapProException(Exception):
    """
    Base exception for all MindMap Pro errors.

    Carries a human-readable message, a machine-readable error code,
    the HTTP status to answer with, and optional details.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the JSON error body."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class MindmapNotFoundError(MindmapProException):
    """Mindmap absent, or share token unknown."""

    def __init__(self, mindmap_id: str, message: str = "Mindmap not found"):
        super().__init__(
            message,
            ErrorCode.MINDMAP_NOT_FOUND,
            status_code=404,
            details={"mindmap_id": mindmap_id} if mindmap_id else {}
        )


class UserNotFoundError(MindmapProException):
    """User not found by id or email."""

    def __init__(self, identifier: str):
        super().__init__(
            "User not found",
            ErrorCode.USER_NOT_FOUND,
            status_code=404,
            details={"user": identifier}
        )


class ShareNotFoundError(MindmapProException):
    """No share grant exists for this (mindmap, user) pair."""

    def __init__(self, mindmap_id: str, user_id: str):
        super().__init__(
            "Share not found",
            ErrorCode.SHARE_NOT_FOUND,
            status_code=404,
            details={"mindmap_id": mindmap_id, "user_id": user_id}
        )


class ValidationError(MindmapProException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details={"field": field} if field else {}
        )


class InvalidPasswordError(MindmapProException):
    """Current password did not match on a password change."""

    def __init__(self, message: str = "Current password is incorrect"):
        super().__init__(message, ErrorCode.INVALID_PASSWORD, status_code=400)


class AuthenticationError(MindmapProException):
    """Request lacks valid authentication credentials."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(message, ErrorCode.UNAUTHORIZED, status_code=401)


class ForbiddenError(MindmapProException):
    """Authenticated user lacks permission for the requested action."""

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message, ErrorCode.FORBIDDEN, status_code=403)


class ConflictError(MindmapProException):
    """Request conflicts with the current state of the store."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, status_code=409, details=details)


class SelfShareError(ConflictError):
    """Owner tried to share a mindmap with themselves."""

    def __init__(self, mindmap_id: str):
        super().__init__(
            "Cannot share a mindmap with yourself",
            ErrorCode.SELF_SHARE,
            details={"mindmap_id": mindmap_id},
        )


class EmailAlreadyRegisteredError(ConflictError):
    """Email is already taken by another account."""

    def __init__(self, email: str):
        super().__init__(
            "Email already registered",
            ErrorCode.EMAIL_ALREADY_REGISTERED,
            details={"email": email},
        )


class QuotaExceededError(ConflictError):
    """Owner already holds the maximum number of mindmaps."""

    def __init__(self, limit: int):
        super().__init__(
            f"Mindmap limit reached ({limit})",
            ErrorCode.QUOTA_EXCEEDED,
            details={"limit": limit},
        )


class StorageError(MindmapProException):
    """Store operation failed. Always fatal to the operation."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = type(original_error).__name__
        super().__init__(
            message,
            ErrorCode.STORAGE_ERROR,
            status_code=500,
            details=details
        )
