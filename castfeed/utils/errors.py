"""
Error normalisation helpers.

Everything the service layer can raise is funnelled through `to_app_error` so
callers only ever deal with one closed taxonomy of failures.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

import aiohttp

from castfeed.exceptions import (
    AppError,
    AuthenticationError,
    BackendError,
    ErrorCode,
    ValidationError,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_CODES = {
    400: ErrorCode.VALIDATION,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION,
    429: ErrorCode.RATE_LIMIT,
}

# Checked in order; the first keyword found in the lowercased message wins.
MESSAGE_KEYWORDS = (
    (("network", "fetch", "connection"), ErrorCode.NETWORK),
    (("timeout", "timed out"), ErrorCode.TIMEOUT),
    (("unauthorized", "401"), ErrorCode.UNAUTHORIZED),
    (("forbidden", "403"), ErrorCode.FORBIDDEN),
    (("not found", "404"), ErrorCode.NOT_FOUND),
    (("conflict", "duplicate", "409"), ErrorCode.CONFLICT),
    (("rate limit", "too many requests", "429"), ErrorCode.RATE_LIMIT),
    (("invalid", "required"), ErrorCode.VALIDATION),
)

USER_MESSAGES = {
    ErrorCode.NETWORK: "A network error occurred. Check your connection.",
    ErrorCode.TIMEOUT: "The request timed out. Wait a moment and try again.",
    ErrorCode.UNAUTHORIZED: "Your session is no longer valid. Please sign in again.",
    ErrorCode.FORBIDDEN: "You do not have permission to do that.",
    ErrorCode.NOT_FOUND: "The requested item could not be found.",
    ErrorCode.CONFLICT: "This item was changed elsewhere. Refresh and try again.",
    ErrorCode.RATE_LIMIT: "Too many requests. Please try again shortly.",
    ErrorCode.VALIDATION: "Some of the provided values are invalid.",
    ErrorCode.UNKNOWN: "An unexpected error occurred.",
}


def _code_for_status(status: int) -> Optional[ErrorCode]:
    if status in STATUS_CODES:
        return STATUS_CODES[status]
    if status >= 500:
        return ErrorCode.NETWORK
    return None


def _code_for_message(message: str) -> ErrorCode:
    lowered = message.lower()
    for keywords, code in MESSAGE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return code
    return ErrorCode.UNKNOWN


def to_app_error(error: Any, context: Optional[str] = None) -> AppError:
    """
    Classifies an arbitrary raised value into an AppError.

    Args:
        error: Anything that was raised (or rejected with).
        context: Name of the failing operation, attached to the result.

    Returns:
        An AppError; an existing AppError is returned unchanged, with the
        context filled in if it had none.
    """
    if isinstance(error, AppError):
        if context and not error.context:
            error.context = context
        return error

    message = str(error) if error is not None else ""
    if not message:
        message = type(error).__name__ if isinstance(error, BaseException) else "Unknown error"

    code: Optional[ErrorCode] = None
    if isinstance(error, ValidationError):
        code = ErrorCode.VALIDATION
    elif isinstance(error, AuthenticationError):
        code = ErrorCode.UNAUTHORIZED
    elif isinstance(error, aiohttp.ClientResponseError):
        code = _code_for_status(error.status)
        message = f"{error.status} {error.message}".strip()
    elif isinstance(error, BackendError) and error.status:
        code = _code_for_status(error.status)
    elif isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        code = ErrorCode.TIMEOUT
    elif isinstance(error, aiohttp.ClientConnectionError):
        code = ErrorCode.NETWORK

    if code is None:
        code = _code_for_message(message)

    return AppError(message, code=code, context=context, cause=error)


def user_message(error: Any) -> str:
    """Returns the alert text to show a user for any raised value."""
    app_error = to_app_error(error)
    if app_error.code == ErrorCode.VALIDATION and isinstance(
        app_error.cause, ValidationError
    ):
        return str(app_error.cause)
    return USER_MESSAGES[app_error.code]


async def with_error_handling(
    operation: Callable[[], Awaitable[T]], context: str
) -> T:
    """
    Awaits an operation, normalising and logging any failure before re-raising
    it as an AppError.
    """
    try:
        return await operation()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        app_error = to_app_error(e, context)
        log.error(
            f"[red]{context} failed ({app_error.code.value}): {app_error}[/red]"
        )
        if app_error is e:
            raise
        raise app_error from e


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    context: Optional[str] = None,
) -> T:
    """
    Retries an operation while it fails with a retryable error.

    The delay before retry n (1-based) is `base_delay * n`. Non-retryable
    failures and the final failure are raised as AppError.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            app_error = to_app_error(e, context)
            if not app_error.retryable or attempt == attempts:
                if app_error is e:
                    raise
                raise app_error from e
            delay = base_delay * attempt
            log.warning(
                f"[yellow]{context or 'operation'} failed ({app_error.code.value}),"
                f" retrying in {delay:.1f}s (attempt {attempt}/{attempts})[/yellow]"
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
