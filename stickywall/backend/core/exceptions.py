"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.
Each carries a stable machine-readable code and optional details that
the exception handlers copy into the error envelope.
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        code: str = "SYS_INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(ApplicationError):
    """Raised when a resource cannot be found."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, code="RES_NOT_FOUND")


class ValidationError(ApplicationError):
    """Raised when validation fails."""

    def __init__(self, message: str = "Validation failed", details: dict | None = None) -> None:
        super().__init__(message, code="VAL_VALIDATION_ERROR", details=details)


class AuthenticationError(ApplicationError):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message, code="AUTH_UNAUTHORIZED")


class AuthorizationError(ApplicationError):
    """Raised when authorization fails."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message, code="AUTHZ_FORBIDDEN")


class ConflictError(ApplicationError):
    """Raised when there is a state conflict."""

    def __init__(self, message: str = "Resource conflict") -> None:
        super().__init__(message, code="RES_CONFLICT")


class OverlapError(ConflictError):
    """Raised when a note would cover too much of an existing note."""

    def __init__(
        self,
        message: str = "This spot is too crowded. Try placing your note somewhere else.",
        details: dict | None = None,
    ) -> None:
        ApplicationError.__init__(self, message, code="PLACEMENT_OVERLAP", details=details)


class RateLimitError(ApplicationError):
    """Raised when a client has already posted within the window."""

    def __init__(
        self,
        message: str = "Only one note per person per day!",
        time_until_next_post: int | None = None,
        time_remaining: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if time_until_next_post is not None:
            details["time_until_next_post"] = time_until_next_post
        if time_remaining is not None:
            details["time_remaining"] = time_remaining
        self.time_until_next_post = time_until_next_post
        super().__init__(message, code="RATE_LIMITED", details=details)


class UploadError(ApplicationError):
    """Raised when a note image cannot be persisted."""

    def __init__(self, message: str = "Failed to upload image") -> None:
        super().__init__(message, code="SYS_UPLOAD_FAILED")


class ExternalServiceError(ApplicationError):
    """Raised when an external service call fails."""

    def __init__(self, message: str = "External service error") -> None:
        super().__init__(message, code="SYS_EXTERNAL_SERVICE_ERROR")


class DatabaseError(ApplicationError):
    """Raised when a database operation fails."""

    def __init__(self, message: str = "Database error") -> None:
        super().__init__(message, code="SYS_DATABASE_ERROR")
