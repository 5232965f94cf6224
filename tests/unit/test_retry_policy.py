"""
Tests for retry backoff policy.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.components.retry import (
    DEFAULT_POLICY,
    ErrorClassification,
    RetryPolicy,
    calculate_next_retry,
    calculate_retry_delay,
    can_retry,
    seconds_until_retry,
)
from tests.fakes import T0, make_item


class TestRetryDelay:
    """Exponential delay capped at max_delay_seconds."""

    @pytest.mark.parametrize(
        ("retry_count", "expected"),
        [(0, 60), (1, 120), (2, 240), (3, 480), (5, 1920), (6, 3600), (10, 3600)],
    )
    def test_default_policy(self, retry_count: int, expected: int) -> None:
        assert calculate_retry_delay(retry_count) == expected

    def test_negative_count_treated_as_zero(self) -> None:
        assert calculate_retry_delay(-3) == DEFAULT_POLICY.base_delay_seconds

    def test_huge_count_is_capped(self) -> None:
        assert calculate_retry_delay(10_000) == DEFAULT_POLICY.max_delay_seconds

    def test_custom_policy(self) -> None:
        policy = RetryPolicy(base_delay_seconds=10, max_delay_seconds=45)
        assert calculate_retry_delay(0, policy) == 10
        assert calculate_retry_delay(1, policy) == 20
        assert calculate_retry_delay(2, policy) == 40
        assert calculate_retry_delay(3, policy) == 45


class TestNextRetry:
    """Next attempt time from delay and classification."""

    def test_without_classification(self) -> None:
        assert calculate_next_retry(1, T0) == T0 + timedelta(seconds=120)

    def test_suggested_backoff_extends_short_delay(self) -> None:
        classification = ErrorClassification("rate_limit", True, 3600)
        assert calculate_next_retry(0, T0, classification) == T0 + timedelta(seconds=3600)

    def test_exponential_delay_wins_when_longer(self) -> None:
        classification = ErrorClassification("network", True, 60)
        assert calculate_next_retry(3, T0, classification) == T0 + timedelta(seconds=480)

    def test_never_beyond_max_delay(self) -> None:
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=300)
        classification = ErrorClassification("rate_limit", True, 10_000)
        assert calculate_next_retry(0, T0, classification, policy) == T0 + timedelta(seconds=300)


class TestCanRetry:
    def test_below_max(self) -> None:
        assert can_retry(make_item("failed", retry_count=2, max_retries=3)) is True

    def test_exhausted(self) -> None:
        assert can_retry(make_item("failed", retry_count=3, max_retries=3)) is False

    def test_zero_max_retries(self) -> None:
        assert can_retry(make_item("failed", retry_count=0, max_retries=0)) is False


class TestSecondsUntilRetry:
    def test_unset(self) -> None:
        assert seconds_until_retry(None, T0) == 0

    def test_future(self) -> None:
        assert seconds_until_retry(T0 + timedelta(seconds=90), T0) == 90

    def test_past(self) -> None:
        assert seconds_until_retry(T0 - timedelta(seconds=90), T0) == 0
