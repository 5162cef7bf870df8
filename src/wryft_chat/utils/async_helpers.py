"""Client error taxonomy, read retries and timeouts.

Every failure the persistence and transport layers surface is a
:class:`ChatError`. Only errors marked ``retryable`` are retried, and only
around idempotent reads: a failed write goes back to the user, who decides
whether to send it again.
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Awaitable, Callable
from typing import ClassVar, ParamSpec, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


# =============================================================================
# Custom Exceptions
# =============================================================================


class ChatError(Exception):
    """Base exception for all chat client errors."""

    retryable: ClassVar[bool] = False


class TransientNetworkError(ChatError):
    """A persistence or transport call failed at the network level."""

    retryable = True


class AuthenticationError(ChatError):
    """The backend rejected the bearer token (HTTP 401)."""


class NotFoundError(ChatError):
    """The edit/delete target does not exist server-side (HTTP 404)."""


class PersistenceError(ChatError):
    """The backend answered with an unexpected non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolViolation(ChatError):
    """An inbound real-time event was malformed or of an unknown type."""


class TimeoutError(ChatError):
    """Operation timed out."""


def error_for_status(status: int, operation: str) -> ChatError:
    """Map a failed HTTP status to the matching client error.

    Args:
        status: Response status, 400 or above.
        operation: Short description such as ``"DELETE /messages/x/m1"``.
    """
    if status == 401:
        return AuthenticationError(f"{operation} was rejected: invalid or expired token")
    if status == 404:
        return NotFoundError(f"{operation}: not found")
    if status >= 500:
        return TransientNetworkError(f"{operation} failed with status {status}")
    return PersistenceError(f"{operation} failed with status {status}", status)


# =============================================================================
# Retry Decorator
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ChatError) and error.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    if outcome is None or outcome.exception() is None:
        return

    error = outcome.exception()
    log.warning(
        "retrying_read",
        attempt=retry_state.attempt_number,
        error_type=type(error).__name__,
        error=str(error),
        wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def create_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
    should_retry: Callable[[BaseException], bool] = is_retryable,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Build a retry decorator with exponential backoff.

    The final error is re-raised unchanged once ``max_attempts`` is spent.

    Args:
        max_attempts: Total attempts, the first call included.
        min_wait: Lower bound on the wait between attempts (seconds).
        max_wait: Upper bound on the wait between attempts (seconds).
        should_retry: Predicate deciding whether an error earns another try.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception(should_retry),
        before_sleep=_log_retry,
        reraise=True,
    )


# =============================================================================
# Timeout Utilities
# =============================================================================


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
) -> T:
    """Await ``coro``, raising :class:`TimeoutError` after ``timeout`` seconds."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except builtins.TimeoutError as e:
        log.warning("operation_timeout", timeout=timeout)
        raise TimeoutError(error_message or f"Operation timed out after {timeout}s") from e
