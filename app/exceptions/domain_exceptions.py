# app/exceptions/domain_exceptions.py

from typing import Any, Dict, Optional
from schemas.friend_request_schema import ErrorKind


class DomainException(Exception):
    """Base class for all domain exceptions"""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidArgumentException(DomainException):
    """Exception raised for malformed or self-targeting requests"""

    kind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            details=details
        )


class UnauthorizedException(DomainException):
    """Exception raised when there is no active identity"""

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=401,
            details=details
        )


class ForbiddenException(DomainException):
    """Exception raised when the caller lacks authority over a record"""

    kind = ErrorKind.FORBIDDEN

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=403,
            details=details
        )


class NotFoundException(DomainException):
    """Exception raised when a resource is not found"""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=404,
            details=details
        )


class InvalidStateException(DomainException):
    """Exception raised when a transition is not legal from the current status"""

    kind = ErrorKind.INVALID_STATE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            details=details
        )


class ConflictException(DomainException):
    """Exception raised when an active relationship already exists for the pair"""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=409,
            details=details
        )


class TransientException(DomainException):
    """Exception raised for retryable network or transport failures"""

    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=503,
            details=details
        )
