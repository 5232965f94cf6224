"""
Retry component - Error classification and backoff policy.
"""

from ._impl import (
    NON_RETRYABLE,
    calculate_next_retry,
    calculate_retry_delay,
    can_retry,
    categorize,
    classify_error,
    is_retryable,
    seconds_until_retry,
    suggested_backoff_seconds,
)
from .models import DEFAULT_POLICY, ErrorClassification, RetryPolicy

__all__ = [
    # Models
    "DEFAULT_POLICY",
    "ErrorClassification",
    "RetryPolicy",
    # Classification
    "NON_RETRYABLE",
    "categorize",
    "classify_error",
    "is_retryable",
    "suggested_backoff_seconds",
    # Backoff
    "calculate_next_retry",
    "calculate_retry_delay",
    "can_retry",
    "seconds_until_retry",
]
