"""Resilience layer for occurrence storage.

Provides retry logic, error classification, and user-friendly error messages
so that a brief backend hiccup does not count as a failed create/update/delete
inside a series batch.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from tripseries.data.repository import OccurrenceRepository
from tripseries.domain.errors import PersistenceError
from tripseries.domain.models import Occurrence, OccurrenceFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(Enum):
    """Classification of storage errors for retry decisions."""

    TRANSIENT = "transient"  # Network issues, timeouts, locks - safe to retry
    PERMANENT = "permanent"  # Missing records, constraint violations - don't retry
    CONFLICT = "conflict"  # Version mismatch - needs resolution


# Exception type names that are transient (safe to retry)
TRANSIENT_ERROR_TYPES = (
    "ConnectionRefusedError",
    "ConnectionResetError",
    "TimeoutError",
    "OSError",
    "ConnectError",
    "ReadTimeout",
    "RemoteProtocolError",
)

# Programming errors never succeed on a second attempt
PERMANENT_ERROR_TYPES = (TypeError, AttributeError, ValueError, KeyError)

# Error messages indicating transient issues
TRANSIENT_ERROR_MESSAGES = (
    "database is locked",
    "connection is closed",
    "connection was closed",
    "timeout",
    "timed out",
    "network",
    "connection refused",
    "connection reset",
    "broken pipe",
    "throttl",
    "rate limit",
    "too many requests",
)

# Error messages indicating permanent failures
PERMANENT_ERROR_MESSAGES = (
    "not found",
    "permission denied",
    "unauthorized",
    "forbidden",
    "constraint failed",
    "violates",
    "invalid",
    "syntax error",
)


def classify_error(exception: Exception) -> ErrorCategory:
    """Classify an exception to determine retry behavior.

    Args:
        exception: The exception to classify

    Returns:
        ErrorCategory indicating whether to retry, fail, or resolve conflict
    """
    error_type = type(exception).__name__
    error_msg = str(exception).lower()

    if "ConcurrencyError" in error_type or "version conflict" in error_msg:
        return ErrorCategory.CONFLICT

    if isinstance(exception, PERMANENT_ERROR_TYPES):
        return ErrorCategory.PERMANENT

    for transient_type in TRANSIENT_ERROR_TYPES:
        if transient_type in error_type:
            return ErrorCategory.TRANSIENT

    for indicator in TRANSIENT_ERROR_MESSAGES:
        if indicator in error_msg:
            return ErrorCategory.TRANSIENT

    for indicator in PERMANENT_ERROR_MESSAGES:
        if indicator in error_msg:
            return ErrorCategory.PERMANENT

    # Default: assume transient for unknown errors (safer to retry)
    logger.warning(f"Unknown error type {error_type}: {exception}")
    return ErrorCategory.TRANSIENT


def get_user_message(exception: Exception) -> str:
    """Get a user-friendly error message for an exception.

    Args:
        exception: The exception to describe

    Returns:
        Human-readable error message
    """
    error_msg = str(exception).lower()
    category = classify_error(exception)

    if category == ErrorCategory.CONFLICT:
        return (
            "This trip was modified by another user. "
            "Please refresh and try again."
        )

    if "not found" in error_msg:
        return "This trip no longer exists. It may have been deleted in another session."

    if any(x in error_msg for x in ("connection", "network", "refused", "reset")):
        return (
            "Unable to reach the trip database. "
            "Please check your internet connection."
        )

    if "timeout" in error_msg or "timed out" in error_msg:
        return "The server took too long to respond. Please try again."

    if any(x in error_msg for x in ("throttl", "rate limit", "too many requests")):
        return "The server is busy. Please wait a moment and try again."

    if category == ErrorCategory.PERMANENT:
        return f"Operation failed: {exception}"

    return "A temporary error occurred. Please try again."


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    on_retry: Optional[Callable[[int, float, Exception], None]] = None,
) -> T:
    """Execute an async operation with exponential backoff retry.

    Args:
        operation: Async callable to execute
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay between retries in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 10.0)
        backoff_factor: Multiplier for delay after each retry (default: 2.0)
        on_retry: Optional callback(attempt, delay, error) called before each retry

    Returns:
        Result of the operation

    Raises:
        Exception: The last exception if all retries fail, or immediately
                   for permanent errors and conflicts
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            category = classify_error(e)

            if category in (ErrorCategory.PERMANENT, ErrorCategory.CONFLICT):
                logger.error(f"Permanent error (no retry): {e}")
                raise

            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                raise

            logger.warning(
                f"Transient error (attempt {attempt + 1}/{max_retries + 1}), "
                f"retrying in {delay:.1f}s: {e}"
            )

            if on_retry:
                on_retry(attempt + 1, delay, e)

            await asyncio.sleep(delay)
            delay = min(delay * backoff_factor, max_delay)

    raise RuntimeError("Retry loop completed without result or exception")


class RetryingOccurrenceRepository(OccurrenceRepository):
    """Wraps a repository so transient failures are retried.

    Whatever the inner repository raises, callers only ever see
    PersistenceError once retries are exhausted or the error is permanent.
    """

    def __init__(
        self,
        inner: OccurrenceRepository,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 10.0,
    ):
        self._inner = inner
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._max_delay = max_delay

    @property
    def inner(self) -> OccurrenceRepository:
        return self._inner

    async def _call(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await with_retry(
                operation,
                max_retries=self._max_retries,
                initial_delay=self._initial_delay,
                max_delay=self._max_delay,
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{description} failed: {e}", get_user_message(e)) from e

    async def create(self, occurrence: Occurrence) -> Occurrence:
        return await self._call("Create", lambda: self._inner.create(occurrence))

    async def find(self, filter: Optional[OccurrenceFilter] = None) -> list[Occurrence]:
        return await self._call("List", lambda: self._inner.find(filter))

    async def get_by_id(self, id: UUID) -> Optional[Occurrence]:
        return await self._call("Load", lambda: self._inner.get_by_id(id))

    async def update(self, id: UUID, fields: dict[str, Any]) -> Occurrence:
        return await self._call("Update", lambda: self._inner.update(id, fields))

    async def delete(self, id: UUID) -> bool:
        return await self._call("Delete", lambda: self._inner.delete(id))

    async def close(self) -> None:
        await self._inner.close()
