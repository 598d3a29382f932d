"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - RetryExecutor: Classifier-driven retry wrapper for any fallible call
    - RetryState / RetryStats: Per-call state machine trace and statistics
"""

from .retry import (
    AUTH_RETRY,
    DEFAULT_RETRY,
    RetryConfig,
    RetryExecutor,
    RetryState,
    RetryStats,
)

__all__ = [
    "RetryConfig",
    "RetryExecutor",
    "RetryState",
    "RetryStats",
    "DEFAULT_RETRY",
    "AUTH_RETRY",
]
