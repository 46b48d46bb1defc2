"""
Error taxonomy for the AuthProxy SDK.

Internals raise these exceptions; the public client catches them at the
boundary and returns them as structured ``ApiError`` values so callers can
branch on ``error.kind`` instead of wrapping every call in try/except.
"""

from enum import Enum
from typing import Optional


VALIDATION_ERROR_CODE = -1


class ErrorKind(str, Enum):
    """Category of a failed operation."""
    VALIDATION = "validation"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    UNAUTHENTICATED = "unauthenticated"


class AuthProxyError(Exception):
    """Base class for all SDK errors."""

    kind: ErrorKind = ErrorKind.PROTOCOL

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_api_error(self):
        from .models import ApiError
        return ApiError(code=self.code, message=self.message, kind=self.kind)


class ValidationError(AuthProxyError):
    """Input rejected before any network call."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message, code=VALIDATION_ERROR_CODE)


class TransportError(AuthProxyError):
    """Connection failure or non-2xx HTTP status."""

    kind = ErrorKind.TRANSPORT


class ProtocolFailure(AuthProxyError):
    """Well-formed response that signals failure or lacks expected fields."""

    kind = ErrorKind.PROTOCOL


class UnauthenticatedError(AuthProxyError):
    """Session missing or expired (HTTP 401)."""

    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = "Session expired", code: Optional[int] = 401):
        super().__init__(message, code=code)
