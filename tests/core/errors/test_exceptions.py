"""Tests for the exception hierarchy and status-to-error mapping."""

import pytest

from core.errors.exceptions import (
    AuthError,
    ClientRequestError,
    ConfigurationError,
    NetworkError,
    PayloadTooLargeError,
    PermissionDeniedError,
    PipelineError,
    ServerError,
    ThrottlingError,
    TimeoutError,
    error_from_status,
)


class TestPipelineError:
    def test_str_includes_cause(self):
        cause = ValueError("inner")
        error = PipelineError("outer", cause=cause)
        assert str(error) == "outer | Caused by: inner"

    def test_context_defaults_to_empty(self):
        assert PipelineError("x").context == {}

    def test_fatal_flags(self):
        assert AuthError("x").is_fatal
        assert PermissionDeniedError("x").is_fatal
        assert ConfigurationError("x").is_fatal
        assert not ServerError("x").is_fatal
        assert not PayloadTooLargeError("x").is_fatal

    def test_retryable_flags(self):
        assert ServerError("x").is_retryable
        assert NetworkError("x").is_retryable
        assert not AuthError("x").is_retryable
        assert not ClientRequestError("x").is_retryable

    def test_payload_too_large_carries_record_ids(self):
        error = PayloadTooLargeError("too big", record_ids=["a", "b"], payload_bytes=300_000)
        assert error.status_code == 413
        assert error.record_ids == ["a", "b"]
        assert error.payload_bytes == 300_000

    def test_plain_pipeline_error_retryable_not_fatal(self):
        error = PipelineError("odd")
        assert error.is_retryable
        assert not error.is_fatal

    def test_permanent_errors_not_retryable(self):
        assert not ConfigurationError("bad hub").is_retryable
        assert not PayloadTooLargeError("too big").is_retryable


class TestErrorFromStatus:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, AuthError),
            (403, PermissionDeniedError),
            (404, ConfigurationError),
            (408, TimeoutError),
            (413, PayloadTooLargeError),
            (429, ThrottlingError),
            (400, ClientRequestError),
            (409, ClientRequestError),
            (500, ServerError),
            (503, ServerError),
        ],
    )
    def test_maps_status_to_type(self, status, expected):
        error = error_from_status(status, f"HTTP {status}")
        assert type(error) is expected
        assert error.status_code == status
        assert error.context["status_code"] == status

    def test_throttling_keeps_retry_after(self):
        error = error_from_status(429, "slow", retry_after=12.0)
        assert error.retry_after == 12.0
