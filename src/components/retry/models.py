"""
Retry component models.

Error classification result and backoff policy configuration.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.entities import ErrorCategory

# --- Classification ---


@dataclass(frozen=True)
class ErrorClassification:
    """How a publish failure should be recorded and retried."""

    type: ErrorCategory
    retryable: bool
    suggested_backoff_seconds: int


# --- Policy ---


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff policy.

    delay(n) = min(base_delay_seconds * 2**n, max_delay_seconds)
    """

    base_delay_seconds: int = 60
    max_delay_seconds: int = 3600
    max_retries: int = 3


DEFAULT_POLICY = RetryPolicy()
