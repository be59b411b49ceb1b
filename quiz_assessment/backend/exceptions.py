"""
Quiz Assessment Platform
Custom exception classes for structured error handling
"""

from typing import Optional, Dict, Any
from fastapi import status


class AppException(Exception):
    """Base application exception with structured error information"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


# Authentication Exceptions
class AuthenticationException(AppException):
    """Raised when authentication fails"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTHENTICATION_FAILED",
            details=details
        )


class InvalidCredentialsException(AuthenticationException):
    """Raised when login credentials are invalid"""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(
            message=message,
            details={"field": "credentials"}
        )


class TokenExpiredException(AuthenticationException):
    """Raised when a bearer token has expired"""

    def __init__(self, message: str = "Access token has expired"):
        super().__init__(
            message=message,
            details={"action": "login_required"}
        )


class TokenInvalidException(AuthenticationException):
    """Raised when a bearer token is malformed or carries a bad signature"""

    def __init__(self, message: str = "Invalid access token"):
        super().__init__(
            message=message,
            details={"action": "login_required"}
        )


# Authorization Exceptions
class AuthorizationException(AppException):
    """Raised when the caller lacks permission for an action"""

    def __init__(
        self,
        message: str = "Access denied",
        required_role: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if required_role:
            details["required_role"] = required_role

        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="ACCESS_DENIED",
            details=details
        )


# Validation Exceptions
class ValidationException(AppException):
    """Raised when submitted data is missing or malformed"""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if field:
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="VALIDATION_ERROR",
            details=details
        )


class InvalidInputException(ValidationException):
    """Raised when a field is present but its value is unusable"""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=f"Invalid {field}: {message}",
            field=field
        )


class MissingFieldException(ValidationException):
    """Raised when a required field is missing"""

    def __init__(self, field: str):
        super().__init__(
            message=f"Missing required field: {field}",
            field=field,
            details={"validation_rule": "required"}
        )


# Resource Exceptions
class NotFoundException(AppException):
    """Raised when requested resource is not found"""

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None
    ):
        details = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details=details
        )


class QuizNotFoundException(NotFoundException):
    """Raised when quiz is not found"""

    def __init__(self, quiz_id: str):
        super().__init__(
            message="Quiz not found",
            resource_type="quiz",
            resource_id=quiz_id
        )


class AttemptNotFoundException(NotFoundException):
    """Raised when a quiz attempt is not found"""

    def __init__(self, attempt_id: Any):
        super().__init__(
            message="Result not found",
            resource_type="attempt",
            resource_id=str(attempt_id)
        )


# Conflict Exceptions
class ConflictException(AppException):
    """Raised when operation conflicts with current state"""

    def __init__(
        self,
        message: str = "Conflict with current state",
        conflict_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if details is None:
            details = {}

        if conflict_type:
            details["conflict_type"] = conflict_type

        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            details=details
        )


class DuplicateResourceException(ConflictException):
    """Raised when trying to create duplicate resource"""

    def __init__(self, resource_type: str, field: str):
        super().__init__(
            message=f"{resource_type.title()} with this {field} already exists",
            conflict_type="duplicate",
            details={
                "resource_type": resource_type,
                "duplicate_field": field
            }
        )


# Storage Exceptions
class PersistenceException(AppException):
    """Raised when the store is unreachable or a transaction fails.

    The message returned to clients is always generic; the underlying
    database error belongs in the server log only.
    """

    def __init__(self, operation: Optional[str] = None):
        details = {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message="A storage error occurred, please try again later",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="PERSISTENCE_ERROR",
            details=details
        )


# Rate Limiting Exceptions
class RateLimitException(AppException):
    """Raised when rate limit is exceeded"""

    def __init__(
        self,
        message: str = "Too many attempts, please try again later",
        retry_after: Optional[int] = None
    ):
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after

        super().__init__(
            message=message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="RATE_LIMIT_EXCEEDED",
            details=details
        )


# Export all exceptions
__all__ = [
    # Base
    "AppException",

    # Authentication
    "AuthenticationException",
    "InvalidCredentialsException",
    "TokenExpiredException",
    "TokenInvalidException",

    # Authorization
    "AuthorizationException",

    # Validation
    "ValidationException",
    "InvalidInputException",
    "MissingFieldException",

    # Resources
    "NotFoundException",
    "QuizNotFoundException",
    "AttemptNotFoundException",

    # Conflicts
    "ConflictException",
    "DuplicateResourceException",

    # Storage
    "PersistenceException",

    # Rate Limiting
    "RateLimitException",
]
