"""
Tests for RetryExecutor and RetryConfig.

Test Coverage:
    - Delay calculation (exponential, capped, Retry-After)
    - Fatal short-circuit (exactly one call)
    - Termination: success value or the last error, never a silent None
    - on_attempt callback outcomes
"""

from unittest.mock import Mock

import pytest

from core.errors.exceptions import (
    NetworkError,
    PermissionDeniedError,
    ServerError,
    ThrottlingError,
)
from core.resilience.retry import (
    AUTH_RETRY,
    DEFAULT_RETRY,
    RetryConfig,
    RetryExecutor,
    RetryState,
)


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 2.0
        assert config.max_delay == 60.0
        assert config.exponential_base == 2.0
        assert config.respect_retry_after is True

    def test_presets(self):
        assert DEFAULT_RETRY.max_attempts == 3
        assert AUTH_RETRY.max_attempts == 2

    def test_type_conversion_from_strings(self):
        """Config handles string inputs (e.g., from YAML)."""
        config = RetryConfig(max_attempts="5", base_delay="2.5", max_delay="60", exponential_base="3")
        assert config.max_attempts == 5
        assert config.base_delay == 2.5
        assert config.max_delay == 60.0
        assert config.exponential_base == 3.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    def test_exponential_backoff(self):
        config = RetryConfig(base_delay=2.0, exponential_base=2.0, max_delay=60.0)
        assert config.get_delay(1) == 2.0
        assert config.get_delay(2) == 4.0
        assert config.get_delay(3) == 8.0

    def test_delay_capped_at_max(self):
        config = RetryConfig(base_delay=2.0, max_delay=60.0)
        assert config.get_delay(10) == 60.0

    def test_retry_after_respected(self):
        config = RetryConfig()
        error = ThrottlingError("slow down", retry_after=7)
        assert config.get_delay(1, error) == 7.0

    def test_retry_after_capped(self):
        config = RetryConfig(max_delay=30.0)
        error = ThrottlingError("slow down", retry_after=600)
        assert config.get_delay(1, error) == 30.0

    def test_retry_after_ignored_when_disabled(self):
        config = RetryConfig(respect_retry_after=False, base_delay=1.0)
        error = ThrottlingError("slow down", retry_after=7)
        assert config.get_delay(1, error) == 1.0


class TestRetryExecutor:
    """Tests for RetryExecutor.execute."""

    def test_success_first_attempt(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=3), sleep=sleeps.append)
        operation = Mock(return_value="ok")

        assert executor.execute(operation, "op") == "ok"
        assert operation.call_count == 1
        assert sleeps == []
        assert executor.last_stats.success is True
        assert executor.last_stats.final_state == RetryState.SUCCEEDED

    def test_retries_transient_then_succeeds(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=3, base_delay=2.0), sleep=sleeps.append)
        operation = Mock(side_effect=[ServerError("HTTP 503"), NetworkError("reset"), "ok"])

        assert executor.execute(operation, "op") == "ok"
        assert operation.call_count == 3
        assert sleeps == [2.0, 4.0]
        assert executor.last_stats.retried is True

    def test_fatal_error_invoked_exactly_once(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=5), sleep=sleeps.append)
        error = PermissionDeniedError("HTTP 403 from sink", status_code=403)
        operation = Mock(side_effect=error)

        with pytest.raises(PermissionDeniedError) as exc_info:
            executor.execute(operation, "op")

        assert exc_info.value is error
        assert operation.call_count == 1
        assert sleeps == []
        assert executor.last_stats.final_state == RetryState.FAILED_PERMANENTLY

    def test_non_retryable_client_error_not_retried(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=3), sleep=sleeps.append)
        operation = Mock(side_effect=ValueError("HTTP 400 bad request"))

        with pytest.raises(ValueError):
            executor.execute(operation, "op")
        assert operation.call_count == 1

    @pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
    def test_terminates_with_last_error(self, sleeps, max_attempts):
        executor = RetryExecutor(RetryConfig(max_attempts=max_attempts), sleep=sleeps.append)
        errors = [ServerError(f"HTTP 500 attempt {i}") for i in range(max_attempts)]
        operation = Mock(side_effect=errors)

        with pytest.raises(ServerError) as exc_info:
            executor.execute(operation, "op")

        assert operation.call_count == max_attempts
        assert exc_info.value is errors[-1]
        assert len(sleeps) == max_attempts - 1

    def test_max_attempts_override(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=5), sleep=sleeps.append)
        operation = Mock(side_effect=ServerError("HTTP 502"))

        with pytest.raises(ServerError):
            executor.execute(operation, "op", max_attempts=2)
        assert operation.call_count == 2

    def test_unknown_error_is_retried(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=2), sleep=sleeps.append)
        operation = Mock(side_effect=[RuntimeError("something odd"), "ok"])

        assert executor.execute(operation, "op") == "ok"
        assert operation.call_count == 2

    def test_uses_retry_after_for_throttling(self, sleeps):
        executor = RetryExecutor(RetryConfig(max_attempts=2), sleep=sleeps.append)
        operation = Mock(side_effect=[ThrottlingError("429", retry_after=3), "ok"])

        executor.execute(operation, "op")
        assert sleeps == [3.0]

    def test_on_attempt_outcomes(self, sleeps):
        events = []
        executor = RetryExecutor(
            RetryConfig(max_attempts=3),
            sleep=sleeps.append,
            on_attempt=lambda name, attempt, outcome, ms: events.append((name, attempt, outcome)),
        )
        operation = Mock(side_effect=[ServerError("HTTP 500"), "ok"])

        executor.execute(operation, "fetch_page:ARM")
        assert events == [("fetch_page:ARM", 1, "retry"), ("fetch_page:ARM", 2, "success")]

    def test_callback_failure_does_not_break_execution(self, sleeps):
        executor = RetryExecutor(
            RetryConfig(max_attempts=1),
            sleep=sleeps.append,
            on_attempt=Mock(side_effect=RuntimeError("metrics down")),
        )
        assert executor.execute(lambda: 42, "op") == 42

    def test_custom_classifier(self, sleeps):
        from core.errors.classifiers import ErrorClassification

        never_retry = Mock(return_value=ErrorClassification("Custom", None, False, False))
        executor = RetryExecutor(RetryConfig(max_attempts=3), classifier=never_retry, sleep=sleeps.append)
        operation = Mock(side_effect=ServerError("HTTP 500"))

        with pytest.raises(ServerError):
            executor.execute(operation, "op")
        assert operation.call_count == 1
