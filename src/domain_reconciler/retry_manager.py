"""
Retry Manager for registrar calls.

This module wraps every registrar gateway call with bounded exponential
backoff. Only transport failures are retried; a registrar-reported business
error (not available, already exists, ...) is returned to the caller at once.
When the elapsed-time budget runs out the last transport error is surfaced
wrapped in a TransientFailure.

All calls are synchronous: backoff blocks the calling thread.
"""

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .enums import ErrorCode
from .exceptions import TransientFailure, TransportError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]
    elapsed_seconds: float = 0.0


def is_transport_error(error: Exception) -> bool:
    """Default retry predicate: only transport failures are retryable."""
    return isinstance(error, TransportError)


class RetryManager:
    """
    Manages retry logic with exponential backoff and an elapsed-time budget.

    The delay before retry n (0-indexed) is
    base_delay * multiplier^n, capped at max_delay, and never longer than
    the remaining budget.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration (defaults to RetryConfig())
            sleep: Blocking sleep function, injectable for tests
            clock: Monotonic clock, injectable for tests
        """
        self._config = config or RetryConfig()
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (self._config.multiplier ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Non-retryable exceptions propagate unchanged. Retryable ones are
        retried until the elapsed budget (or max_retries, if set) is spent.

        Args:
            operation: The operation to execute
            is_retryable: Predicate deciding whether an exception is retryable.
                         Defaults to transport errors only.

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        is_retryable = is_retryable or is_transport_error
        start = self._clock()
        attempts = 0
        last_error: Optional[Exception] = None

        while True:
            try:
                result = operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                    elapsed_seconds=self._clock() - start,
                )
            except Exception as e:
                if not is_retryable(e):
                    raise
                last_error = e
                attempts += 1

            if self._config.max_retries is not None and attempts > self._config.max_retries:
                break

            elapsed = self._clock() - start
            remaining = self._config.max_elapsed_seconds - elapsed
            if remaining <= 0:
                break

            self._sleep(min(self._calculate_delay(attempts - 1), remaining))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
            elapsed_seconds=self._clock() - start,
        )

    def call(self, operation: Callable[..., T], *args, **kwargs) -> T:
        """
        Call operation(*args, **kwargs) under the retry policy.

        Raises:
            TransientFailure: If the retry budget is exhausted
            ReconcilerError: Any non-transport error, immediately
        """
        outcome = self.execute_with_retry(lambda: operation(*args, **kwargs))
        if outcome.success:
            return outcome.result
        raise self._exhausted(outcome, getattr(operation, "__name__", "operation"))

    def _exhausted(self, outcome: RetryResult, operation_name: str) -> TransientFailure:
        error = TransientFailure(
            code=ErrorCode.TRANSIENT_FAILURE.value,
            message=(
                f"{operation_name} failed after {outcome.attempts} attempt(s): "
                f"{outcome.last_error}"
            ),
            details={
                "operation": operation_name,
                "attempts": outcome.attempts,
                "elapsed_seconds": round(outcome.elapsed_seconds, 3),
                "last_error": str(outcome.last_error),
            },
            last_error=outcome.last_error,
        )
        error.__cause__ = outcome.last_error
        return error
