"""Tests for error classification and the retry helper."""

from __future__ import annotations

import asyncio

import aiohttp
import pytest

from castfeed.exceptions import (
    AppError,
    AuthenticationError,
    BackendError,
    ErrorCode,
    ValidationError,
)
from castfeed.utils.errors import (
    retry_with_backoff,
    to_app_error,
    user_message,
    with_error_handling,
)


def test_network_message_is_retryable_network_error() -> None:
    error = to_app_error(Exception("network down"))
    assert error.code == ErrorCode.NETWORK
    assert error.retryable is True


@pytest.mark.parametrize(
    ("message", "code"),
    [
        ("Request timed out", ErrorCode.TIMEOUT),
        ("401 Unauthorized", ErrorCode.UNAUTHORIZED),
        ("Forbidden", ErrorCode.FORBIDDEN),
        ("profile not found", ErrorCode.NOT_FOUND),
        ("duplicate key value violates unique constraint", ErrorCode.CONFLICT),
        ("Too Many Requests", ErrorCode.RATE_LIMIT),
        ("title is required", ErrorCode.VALIDATION),
        ("something odd", ErrorCode.UNKNOWN),
    ],
)
def test_message_keywords(message: str, code: ErrorCode) -> None:
    assert to_app_error(Exception(message)).code == code


@pytest.mark.parametrize(
    ("status", "code", "retryable"),
    [
        (401, ErrorCode.UNAUTHORIZED, False),
        (403, ErrorCode.FORBIDDEN, False),
        (404, ErrorCode.NOT_FOUND, False),
        (409, ErrorCode.CONFLICT, False),
        (422, ErrorCode.VALIDATION, False),
        (429, ErrorCode.RATE_LIMIT, True),
        (503, ErrorCode.NETWORK, True),
    ],
)
def test_backend_status_codes(status: int, code: ErrorCode, retryable: bool) -> None:
    error = to_app_error(BackendError("failed", status=status))
    assert error.code == code
    assert error.retryable is retryable


def test_typed_errors() -> None:
    assert to_app_error(ValidationError("bad")).code == ErrorCode.VALIDATION
    assert to_app_error(AuthenticationError("nope")).code == ErrorCode.UNAUTHORIZED
    assert to_app_error(asyncio.TimeoutError()).code == ErrorCode.TIMEOUT
    assert (
        to_app_error(aiohttp.ClientConnectionError("refused")).code
        == ErrorCode.NETWORK
    )


def test_app_error_passes_through_and_gains_context() -> None:
    original = AppError("boom", code=ErrorCode.CONFLICT)
    result = to_app_error(original, "publish")
    assert result is original
    assert result.context == "publish"


def test_non_exception_values_are_classified() -> None:
    assert to_app_error("connection reset").code == ErrorCode.NETWORK
    assert to_app_error(None).code == ErrorCode.UNKNOWN


def test_user_message_uses_validation_text() -> None:
    assert user_message(ValidationError("Enter a title.")) == "Enter a title."
    assert user_message(BackendError("x", status=404)) == (
        "The requested item could not be found."
    )


async def test_with_error_handling_reraises_as_app_error() -> None:
    async def failing() -> None:
        raise BackendError("conflict", status=409)

    with pytest.raises(AppError) as excinfo:
        await with_error_handling(failing, "toggle")
    assert excinfo.value.code == ErrorCode.CONFLICT
    assert excinfo.value.context == "toggle"
    assert isinstance(excinfo.value.cause, BackendError)


async def test_with_error_handling_returns_result() -> None:
    async def ok() -> int:
        return 7

    assert await with_error_handling(ok, "ok") == 7


async def test_retry_recovers_from_retryable_errors(monkeypatch) -> None:
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise Exception("network unreachable")
        return "done"

    assert await retry_with_backoff(flaky, attempts=3, base_delay=0.5) == "done"
    assert delays == [0.5, 1.0]


async def test_retry_stops_on_non_retryable_error() -> None:
    attempts = 0

    async def forbidden() -> None:
        nonlocal attempts
        attempts += 1
        raise BackendError("no", status=403)

    with pytest.raises(AppError) as excinfo:
        await retry_with_backoff(forbidden, attempts=3, base_delay=0)
    assert excinfo.value.code == ErrorCode.FORBIDDEN
    assert attempts == 1


async def test_retry_gives_up_after_last_attempt() -> None:
    attempts = 0

    async def down() -> None:
        nonlocal attempts
        attempts += 1
        raise aiohttp.ClientConnectionError("refused")

    with pytest.raises(AppError) as excinfo:
        await retry_with_backoff(down, attempts=2, base_delay=0)
    assert excinfo.value.code == ErrorCode.NETWORK
    assert attempts == 2


async def test_retry_rejects_zero_attempts() -> None:
    async def noop() -> None:
        return None

    with pytest.raises(ValueError):
        await retry_with_backoff(noop, attempts=0)
