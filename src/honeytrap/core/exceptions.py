"""
Custom exceptions for the honeytrap service.

Messages are fixed, user-facing strings. Nothing raised here may reveal
whether a failure came from input, rate limiting or the storage layer.
"""

from typing import Any, Dict, Optional


class HoneytrapException(Exception):
    """Base exception for the honeytrap service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(HoneytrapException):
    """Raised when a required field is missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="validation_error",
            details=details,
        )


class RateLimitError(HoneytrapException):
    """Raised when a guarded surface exhausts its window for a key."""

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        retry_after: Optional[int] = None,
    ) -> None:
        details = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            status_code=429,
            error_code="rate_limit_exceeded",
            details=details,
        )


class AuthDeniedError(HoneytrapException):
    """Raised when a submitted PIN does not match."""

    def __init__(self, message: str = "Invalid PIN code") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="auth_denied",
        )


class MisconfigurationError(HoneytrapException):
    """Raised when the stored admin PIN has not been provisioned."""

    def __init__(self, message: str = "System error - please contact administrator") -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="system_misconfiguration",
        )


class StorageError(HoneytrapException):
    """Raised when the persistence store cannot be read or written."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="storage_error",
            details=details,
        )


class SessionRequiredError(HoneytrapException):
    """Raised when an analytics route is hit without an admin session."""

    def __init__(self, redirect_to: str) -> None:
        super().__init__(
            message="Authentication required",
            status_code=302,
            error_code="session_required",
            details={"redirect_to": redirect_to},
        )
