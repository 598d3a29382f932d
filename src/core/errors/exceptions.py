"""
Unified exception hierarchy for the inventory export.

Provides typed exceptions with retry classification so that fatal,
transient, and record-level failures can be told apart all the way up
to the top-level export result.
"""

from typing import Optional


class PipelineError(Exception):
    """
    Base exception for all export errors.

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context dict for debugging
        status_code: HTTP status code when the error came from an HTTP call
    """

    fatal: bool = False
    retryable: bool = True

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.retryable and not self.fatal

    @property
    def is_fatal(self) -> bool:
        return self.fatal

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication / Authorization Errors (fatal for the current unit)
# =============================================================================


class AuthError(PipelineError):
    """Credentials rejected or token could not be issued (401)."""

    fatal = True
    retryable = False


class PermissionDeniedError(AuthError):
    """Identity authenticated but lacks the required role (403)."""

    pass


# =============================================================================
# Transient Errors (retry with backoff)
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    pass


class ThrottlingError(TransientError):
    """Rate limited (429) - should back off."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
        status_code: int | None = 429,
    ):
        super().__init__(message, cause, context, status_code)
        self.retry_after = retry_after  # Seconds to wait if provided


class ServerError(TransientError):
    """Remote service failed (5xx)."""

    pass


class NetworkError(TransientError):
    """Connection refused/reset, DNS failure, socket error."""

    pass


class TimeoutError(TransientError):
    """Operation timeout error (transient, retryable)."""

    pass


# =============================================================================
# Permanent Errors (don't retry)
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    retryable = False


class ConfigurationError(PermanentError):
    """Target does not exist or configuration is invalid (404, bad config)."""

    fatal = True


class PayloadTooLargeError(PermanentError):
    """Sink rejected the payload size (413). A batch sizing problem, not a data problem."""

    def __init__(
        self,
        message: str,
        record_ids: list[str] | None = None,
        payload_bytes: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context, status_code=413)
        self.record_ids = record_ids or []
        self.payload_bytes = payload_bytes


class ClientRequestError(PermanentError):
    """Other 4xx responses: the request itself is wrong and will not improve on retry."""

    pass


# =============================================================================
# HTTP status mapping
# =============================================================================


def error_from_status(
    status_code: int,
    message: str,
    retry_after: Optional[float] = None,
    cause: Exception | None = None,
    context: dict | None = None,
) -> PipelineError:
    """
    Build the typed error for a non-success HTTP response.

    Args:
        status_code: HTTP status returned by the remote service
        message: Description including the target and any error body excerpt
        retry_after: Parsed Retry-After header (seconds), if any
        cause: Underlying exception, if any
        context: Extra context for diagnostics

    Returns:
        PipelineError subclass matching the status
    """
    ctx = dict(context or {})
    ctx["status_code"] = status_code

    if status_code == 401:
        return AuthError(message, cause=cause, context=ctx, status_code=status_code)
    if status_code == 403:
        return PermissionDeniedError(message, cause=cause, context=ctx, status_code=status_code)
    if status_code == 404:
        return ConfigurationError(message, cause=cause, context=ctx, status_code=status_code)
    if status_code == 413:
        return PayloadTooLargeError(message, cause=cause, context=ctx)
    if status_code == 429:
        return ThrottlingError(
            message, retry_after=retry_after, cause=cause, context=ctx, status_code=status_code
        )
    if status_code == 408:
        return TimeoutError(message, cause=cause, context=ctx, status_code=status_code)
    if 400 <= status_code < 500:
        return ClientRequestError(message, cause=cause, context=ctx, status_code=status_code)
    if status_code >= 500:
        return ServerError(message, cause=cause, context=ctx, status_code=status_code)
    return PipelineError(message, cause=cause, context=ctx, status_code=status_code)
