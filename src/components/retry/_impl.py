"""
Error classification and retry backoff.

classify_error is pure: no I/O, same answer for the same error shape.
Resolution order:
1. PublishError with an explicit category
2. PublishError with an HTTP status code
3. Builtin exception types (TimeoutError, ConnectionError)
4. Message keywords, first matching category wins
5. unknown

Auth and validation failures are not retryable without user action;
everything else is.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from src.core.entities import ErrorCategory, PublishError, PublishingQueueItem

from .models import DEFAULT_POLICY, ErrorClassification, RetryPolicy

NON_RETRYABLE: frozenset[str] = frozenset({"auth", "validation"})

# Checked in order; "connection timed out" is a network error.
_MESSAGE_RULES: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (
        "network",
        ("network", "econnrefused", "enotfound", "etimedout", "connection", "fetch failed"),
    ),
    ("timeout", ("timeout", "timed out")),
    ("rate_limit", ("rate limit", "rate-limit", "429", "too many requests")),
    (
        "auth",
        (
            "unauthorized",
            "authentication",
            "401",
            "invalid token",
            "access denied",
            "forbidden",
        ),
    ),
    ("validation", ("validation", "invalid", "required", "malformed", "400")),
    (
        "server_error",
        (
            "500",
            "502",
            "503",
            "504",
            "internal server error",
            "bad gateway",
            "service unavailable",
        ),
    ),
)


def is_retryable(category: str) -> bool:
    return category not in NON_RETRYABLE


def suggested_backoff_seconds(
    category: ErrorCategory,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> int:
    """Minimum wait the category asks for before another attempt."""
    if category in NON_RETRYABLE:
        return 0
    if category == "network":
        return policy.base_delay_seconds
    if category == "rate_limit":
        return policy.max_delay_seconds
    return policy.base_delay_seconds * 2


def _category_for_status(status_code: int) -> ErrorCategory | None:
    if status_code == 429:
        return "rate_limit"
    if status_code in (401, 403):
        return "auth"
    if status_code in (400, 404, 409, 422):
        return "validation"
    if 500 <= status_code <= 599:
        return "server_error"
    return None


def _category_for_message(message: str) -> ErrorCategory:
    lowered = message.lower()
    for category, keywords in _MESSAGE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "unknown"


def categorize(error: BaseException | str) -> ErrorCategory:
    """Map an error (or a bare message) to its category."""
    if isinstance(error, str):
        return _category_for_message(error)

    if isinstance(error, PublishError):
        if error.category is not None:
            return error.category
        if error.status_code is not None:
            by_status = _category_for_status(error.status_code)
            if by_status is not None:
                return by_status

    if isinstance(error, TimeoutError):
        return "timeout"
    if isinstance(error, ConnectionError):
        return "network"

    return _category_for_message(str(error))


def classify_error(
    error: BaseException | str,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> ErrorClassification:
    """
    Classify a publish failure.

    Args:
        error: Raised exception or error message
        policy: Backoff policy used to size the suggested wait

    Returns:
        ErrorClassification with category, retryability and suggested backoff
    """
    category = categorize(error)
    return ErrorClassification(
        type=category,
        retryable=is_retryable(category),
        suggested_backoff_seconds=suggested_backoff_seconds(category, policy),
    )


# --- Backoff ---


def calculate_retry_delay(
    retry_count: int,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> int:
    """Exponential delay in seconds for the given number of prior failures."""
    exponent = max(0, retry_count)
    # Cap the exponent so huge retry counts do not build huge ints
    delay = policy.base_delay_seconds * (2 ** min(exponent, 32))
    return min(delay, policy.max_delay_seconds)


def calculate_next_retry(
    retry_count: int,
    now_utc: datetime,
    classification: ErrorClassification | None = None,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> datetime:
    """
    Calculate when a failed item may be attempted again.

    The wait is the larger of the exponential delay and the category's
    suggested backoff, never more than max_delay_seconds.
    """
    delay = calculate_retry_delay(retry_count, policy)
    if classification is not None:
        delay = max(delay, classification.suggested_backoff_seconds)
    delay = min(delay, policy.max_delay_seconds)
    return now_utc + timedelta(seconds=delay)


def can_retry(item: PublishingQueueItem) -> bool:
    """Whether an explicit retry is still allowed for this item."""
    return item.retry_count < item.max_retries


def seconds_until_retry(retry_after: datetime | None, now_utc: datetime) -> int:
    """Seconds left before retry_after (0 when unset or already due)."""
    if retry_after is None:
        return 0
    return max(0, int((retry_after - now_utc).total_seconds()))
