"""Exceptions and async plumbing for completion calls.

- The RepairLoopError hierarchy raised across the package
- Retry with exponential backoff for transient transport failures
- Timeouts that surface as the package TimeoutError
- Cancellation tokens that abandon an in-flight completion
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


# =============================================================================
# Exceptions
# =============================================================================


class RepairLoopError(Exception):
    """Base exception for all repair loop errors."""


class CompletionError(RepairLoopError):
    """The completion collaborator failed to produce a reply."""


class RateLimitError(CompletionError):
    """The completion backend refused the request for now.

    Attributes:
        retry_after: Seconds the backend asked us to wait, if it said.
    """

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TimeoutError(CompletionError):
    """A completion did not finish within its time budget."""


class SessionStateError(RepairLoopError):
    """Operation not allowed in the session's current status."""


# =============================================================================
# Retry
# =============================================================================


def _log_retry(retry_state: RetryCallState) -> None:
    if retry_state.outcome is None:
        return

    exception = retry_state.outcome.exception()
    if exception is not None:
        log.warning(
            "completion_retry_scheduled",
            attempt=retry_state.attempt_number,
            exception_type=type(exception).__name__,
            error=str(exception),
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        )


def create_retry(
    retry_on: tuple[type[BaseException], ...],
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 30.0,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Build a tenacity decorator that retries only the given exceptions.

    Args:
        retry_on: Exception types treated as transient
        max_attempts: Total attempts, the first call included
        min_wait: Lower bound of the exponential backoff, in seconds
        max_wait: Upper bound of the exponential backoff, in seconds

    Returns:
        Decorator for async callables. The last exception is re-raised
        once attempts run out.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )


# =============================================================================
# Timeouts
# =============================================================================


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    error_message: str | None = None,
) -> T:
    """Await with a deadline in seconds.

    Raises:
        TimeoutError: The package exception, not the builtin, so callers
            can handle it as a CompletionError.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except builtins.TimeoutError as e:
        log.warning("completion_deadline_exceeded", timeout=timeout)
        raise TimeoutError(error_message or f"Operation timed out after {timeout}s") from e


# =============================================================================
# Cancellation
# =============================================================================


class CancellationToken:
    """Cooperative cancellation for a fix attempt.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(loop.attempt_fix(cancel_token=token))

        # User abandons the session
        token.cancel("user navigated away")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Why cancellation was requested, if a reason was given."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise asyncio.CancelledError if cancellation was requested."""
        if self.is_cancelled:
            message = "Operation was cancelled"
            if self._reason:
                message += f": {self._reason}"
            raise asyncio.CancelledError(message)


async def run_cancellable(awaitable: Awaitable[T], token: CancellationToken | None) -> T:
    """Await `awaitable`, abandoning it as soon as `token` is cancelled.

    Args:
        awaitable: Work to run, usually a completion request
        token: Token to watch; None runs the awaitable plainly

    Returns:
        The awaitable's result

    Raises:
        asyncio.CancelledError: If the token is cancelled before or while
            the work runs. The pending work is cancelled too.
    """
    if token is None:
        return await awaitable

    token.raise_if_cancelled()

    work = asyncio.ensure_future(awaitable)
    watcher = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()

    if token.is_cancelled:
        work.cancel()
        log.info("completion_abandoned", reason=token.reason)
        token.raise_if_cancelled()

    return work.result()
