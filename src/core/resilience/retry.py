"""
Retry utilities with classifier-driven decisions.

Every fallible remote call in the export (token acquisition, page fetch,
batch transmission) runs through RetryExecutor:
- Retryable errors: retry with exponential backoff, capped at max_delay
- Fatal or non-retryable errors: fail immediately (no further attempts)
- Attempts exhausted: re-raise the last observed error unchanged

State machine per execute() call:

    ATTEMPTING -> SUCCEEDED            operation returned
    ATTEMPTING -> RETRY_SCHEDULED      retryable error, attempts remain
    RETRY_SCHEDULED -> ATTEMPTING      after the backoff delay
    ATTEMPTING -> FAILED_PERMANENTLY   non-retryable error, or attempts exhausted
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TypeVar

from core.errors.classifiers import ErrorClassification, classify_error
from core.errors.exceptions import ThrottlingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED_PERMANENTLY = "failed_permanently"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0
    exponential_base: float = 2.0

    # If True, use retry_after from ThrottlingError when available
    respect_retry_after: bool = True

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so only coerce non-bools
        self.respect_retry_after = (
            self.respect_retry_after
            if isinstance(self.respect_retry_after, bool)
            else str(self.respect_retry_after).lower() in ("1", "true", "yes")
        )
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: 1-indexed number of the attempt that just failed
            error: Optional exception to check for retry_after

        Returns:
            min(max_delay, base_delay * exponential_base^(attempt-1)) seconds,
            or the server-provided Retry-After (also capped) for throttling.
        """
        if (
            self.respect_retry_after
            and isinstance(error, ThrottlingError)
            and error.retry_after
        ):
            return min(float(error.retry_after), self.max_delay)

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        return min(delay, self.max_delay)


# Default configurations
DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=2.0)
AUTH_RETRY = RetryConfig(max_attempts=2, base_delay=1.0)


@dataclass
class RetryStats:
    """Statistics from a retry operation."""

    attempts: int = 0
    total_delay: float = 0.0
    final_error: Exception | None = None
    classification: ErrorClassification | None = None
    success: bool = False
    states: list[RetryState] = field(default_factory=list)

    @property
    def retried(self) -> bool:
        """Whether any retries occurred."""
        return self.attempts > 1

    @property
    def final_state(self) -> RetryState | None:
        return self.states[-1] if self.states else None


# Callback signature: (operation_name, attempt, outcome, elapsed_ms)
AttemptCallback = Callable[[str, int, str, float], None]


class RetryExecutor:
    """
    Generic retry wrapper around any fallible zero-argument operation.

    Usage:
        executor = RetryExecutor(RetryConfig(max_attempts=3))
        page = executor.execute(lambda: session.get(url), operation_name="fetch_page")
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        classifier: Callable[[BaseException], ErrorClassification] = classify_error,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Optional[AttemptCallback] = None,
    ):
        self.config = config or DEFAULT_RETRY
        self.classifier = classifier
        self._sleep = sleep
        self._on_attempt = on_attempt
        self.last_stats: RetryStats | None = None

    def _notify(self, operation_name: str, attempt: int, outcome: str, elapsed_ms: float) -> None:
        if self._on_attempt is None:
            return
        try:
            self._on_attempt(operation_name, attempt, outcome, elapsed_ms)
        except Exception as cb_err:
            logger.warning(
                "Error in on_attempt callback for %s: %s",
                operation_name,
                str(cb_err)[:100],
                extra={"operation": operation_name, "callback_error": str(cb_err)[:100]},
            )

    def execute(
        self,
        operation: Callable[[], T],
        operation_name: str = "operation",
        max_attempts: int | None = None,
        classifier: Callable[[BaseException], ErrorClassification] | None = None,
    ) -> T:
        """
        Run operation, retrying retryable failures with backoff.

        Args:
            operation: Zero-argument callable to invoke
            operation_name: Name used in telemetry
            max_attempts: Override for config.max_attempts
            classifier: Override for the executor's classifier

        Returns:
            Whatever operation returns

        Raises:
            The original exception raised by the final attempt. Never wrapped,
            so callers can classify it again upstream.
        """
        attempts_allowed = int(max_attempts or self.config.max_attempts)
        classify = classifier or self.classifier
        stats = RetryStats()
        self.last_stats = stats
        started = time.perf_counter()

        for attempt in range(1, attempts_allowed + 1):
            stats.attempts = attempt
            stats.states.append(RetryState.ATTEMPTING)
            try:
                result = operation()
            except Exception as e:
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                classification = classify(e)
                stats.final_error = e
                stats.classification = classification

                give_up = (
                    classification.is_fatal
                    or not classification.is_retryable
                    or attempt >= attempts_allowed
                )
                if give_up:
                    stats.states.append(RetryState.FAILED_PERMANENTLY)
                    self._log_failure(operation_name, attempt, attempts_allowed, classification, e, elapsed_ms)
                    self._notify(operation_name, attempt, "failed", elapsed_ms)
                    raise

                delay = self.config.get_delay(attempt, e)
                stats.states.append(RetryState.RETRY_SCHEDULED)
                stats.total_delay += delay
                logger.warning(
                    "Retryable error for %s, will retry",
                    operation_name,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "max_attempts": attempts_allowed,
                        "error_type": classification.error_type,
                        "status_code": classification.http_status_code,
                        "delay_seconds": round(delay, 2),
                        "duration_ms": elapsed_ms,
                        "error_message": str(e)[:200],
                    },
                )
                self._notify(operation_name, attempt, "retry", elapsed_ms)
                self._sleep(delay)
                continue

            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            stats.success = True
            stats.states.append(RetryState.SUCCEEDED)
            if attempt > 1:
                logger.info(
                    "Retry succeeded for %s after %d attempts",
                    operation_name,
                    attempt,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "total_attempts": attempts_allowed,
                        "duration_ms": elapsed_ms,
                    },
                )
            else:
                logger.debug(
                    "Operation succeeded: %s",
                    operation_name,
                    extra={"operation": operation_name, "attempt": attempt, "duration_ms": elapsed_ms},
                )
            self._notify(operation_name, attempt, "success", elapsed_ms)
            return result

        # range() always runs at least once and every path returns or raises
        raise RuntimeError(f"Retry loop for {operation_name} exited without a result")

    @staticmethod
    def _log_failure(
        operation_name: str,
        attempt: int,
        attempts_allowed: int,
        classification: ErrorClassification,
        error: Exception,
        elapsed_ms: float,
    ) -> None:
        extra = {
            "operation": operation_name,
            "attempt": attempt,
            "max_attempts": attempts_allowed,
            "error_type": classification.error_type,
            "status_code": classification.http_status_code,
            "is_fatal": classification.is_fatal,
            "duration_ms": elapsed_ms,
            "error_message": str(error)[:200],
        }
        if classification.is_fatal or not classification.is_retryable:
            logger.warning(
                "Non-retryable error for %s, not retrying: %s",
                operation_name,
                str(error)[:200],
                extra=extra,
            )
        else:
            logger.error(
                "Max retries exhausted for %s: %s",
                operation_name,
                str(error)[:200],
                extra=extra,
            )


__all__ = [
    "RetryConfig",
    "RetryExecutor",
    "RetryState",
    "RetryStats",
    "DEFAULT_RETRY",
    "AUTH_RETRY",
]
