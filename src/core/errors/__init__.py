"""
Error classification and exception hierarchy.

Provides:
- PipelineError hierarchy for typed exceptions
- error_from_status for mapping HTTP responses onto that hierarchy
- classify_error for retry and halt decisions
"""

from core.errors.classifiers import (
    ErrorClassification,
    classify_error,
    extract_status_code,
    remediation_for,
)
from core.errors.exceptions import (
    AuthError,
    ClientRequestError,
    ConfigurationError,
    NetworkError,
    PayloadTooLargeError,
    PermanentError,
    PermissionDeniedError,
    PipelineError,
    ServerError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    error_from_status,
)

__all__ = [
    # Base classes
    "PipelineError",
    "AuthError",
    "PermissionDeniedError",
    "TransientError",
    "ThrottlingError",
    "ServerError",
    "NetworkError",
    "TimeoutError",
    "PermanentError",
    "ConfigurationError",
    "PayloadTooLargeError",
    "ClientRequestError",
    "error_from_status",
    # Classifier
    "ErrorClassification",
    "classify_error",
    "extract_status_code",
    "remediation_for",
]
