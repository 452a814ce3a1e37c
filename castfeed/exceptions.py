"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from enum import Enum
from typing import Any, Optional


class CastfeedError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(CastfeedError):
    """Raised for issues related to configuration loading or validation."""


class AuthenticationError(CastfeedError):
    """Raised when sign-in fails or an operation requires a signed-in user."""


class ValidationError(CastfeedError):
    """Raised when user input is rejected before any request is made."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class GenerationError(CastfeedError):
    """
    Raised when a generation endpoint answers successfully but the payload is
    unusable (missing script, no non-empty lines, ...).
    """


class BackendError(CastfeedError):
    """Raised when the managed backend returns an error payload."""

    def __init__(
        self, message: str, status: int = 0, code: Optional[str] = None
    ):
        super().__init__(message)
        self.status = status
        self.code = code


class PlayerError(CastfeedError):
    """Raised by media player backends when the underlying player fails."""


class ErrorCode(str, Enum):
    """Closed taxonomy every failure is normalised into."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


RETRYABLE_CODES = frozenset(
    {ErrorCode.NETWORK, ErrorCode.TIMEOUT, ErrorCode.RATE_LIMIT}
)


class AppError(CastfeedError):
    """
    A normalised error carrying its classification.

    Attributes:
        code: The ErrorCode this failure was classified as.
        retryable: Whether retrying the same operation may succeed.
        context: Name of the operation that failed, if known.
        cause: The original value that was classified.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        retryable: Optional[bool] = None,
        context: Optional[str] = None,
        cause: Any = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.retryable = (
            self.code in RETRYABLE_CODES if retryable is None else retryable
        )
        self.context = context
        self.cause = cause

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code.value!r}, retryable={self.retryable}, "
            f"context={self.context!r}, message={str(self)!r})"
        )
