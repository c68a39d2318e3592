"""
Custom Exceptions
Application-specific exception classes
"""

from datetime import datetime
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base application exception"""

    def __init__(
        self,
        message: str,
        code: str = "app_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(self.message)


class ValidationException(AppException):
    """Validation error exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
        )


class InvalidLocatorException(AppException):
    """The supplied file locator cannot be normalized to a storage key"""

    def __init__(
        self,
        message: str = "Invalid file URL format",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="invalid_locator",
            status_code=400,
            details=details,
        )


class AuthenticationException(AppException):
    """Authentication error exception"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authentication_error",
            status_code=401,
            details=details,
        )


class AuthorizationException(AppException):
    """Authorization error exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        code: str = "authorization_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=403,
            details=details,
        )


class PermissionException(AuthorizationException):
    """
    Access to a stored file was denied

    ``reason`` is the internal rule code kept for audit logs. It is never
    placed in ``details`` so the response cannot be used to probe which
    relationship was missing.
    """

    def __init__(
        self,
        message: str = "Permission denied",
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        super().__init__(
            message=message,
            code="permission_denied",
            details=details,
        )


class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource: str = "Resource",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{resource} not found",
            code="not_found",
            status_code=404,
            details=details,
        )


class UpstreamFailureException(AppException):
    """Relational store or storage backend failed during a lookup"""

    def __init__(
        self,
        message: str = "Upstream service failure",
        source: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if source:
            details["source"] = source
        super().__init__(
            message=message,
            code="upstream_failure",
            status_code=500,
            details=details,
        )


class StorageException(UpstreamFailureException):
    """Object storage error exception"""

    def __init__(
        self,
        message: str = "Failed to access file",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, source="storage", details=details)
        self.code = "storage_error"
