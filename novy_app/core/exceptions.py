"""Domain exceptions raised by services and rendered by the API layer."""
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base exception for the application"""

    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="VALIDATION_ERROR", status_code=422, details=details)


class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="NOT_FOUND", status_code=404, details=details)


class AuthenticationError(AppException):
    def __init__(self, message: str = "Not authenticated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="AUTHENTICATION_FAILED", status_code=401, details=details)


class ForbiddenError(AppException):
    """Authenticated but not entitled: wrong actor or wrong ordering"""

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="FORBIDDEN", status_code=403, details=details)


class ConflictError(AppException):
    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        code: str = "CONFLICT",
    ):
        super().__init__(message=message, code=code, status_code=409, details=details)


class AlreadyUsedError(ConflictError):
    def __init__(self, message: str = "This link has already been used", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, code="ALREADY_USED")


class InvalidStateError(AppException):
    def __init__(self, message: str = "Invalid state transition", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INVALID_STATE", status_code=409, details=details)


class ExpiredError(AppException):
    def __init__(self, message: str = "This link has expired", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="EXPIRED", status_code=410, details=details)


class IntegrityViolationError(AppException):
    """Cross-referenced identifiers disagree. Alerting, never user facing."""

    def __init__(self, message: str = "Integrity violation", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="INTEGRITY_VIOLATION", status_code=500, details=details)


class UpstreamError(AppException):
    def __init__(self, message: str = "Upstream provider error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="UPSTREAM_ERROR", status_code=502, details=details)
