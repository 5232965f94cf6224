"""
Publishing queue domain entities.

A queue item is one unit of work: publish article X to platform Y for
organization Z. Items are created in 'pending' (scheduled) or 'queued'
(publish as soon as possible) and then only move through the transitions
declared in ALLOWED_TRANSITIONS.

State machine:
- pending -> queued -> publishing -> published | failed
- pending -> publishing (retry lane)
- failed -> pending (explicit retry)
- any non-terminal state except publishing -> cancelled

Invariants:
- published/failed are only reachable from publishing
- every status change stamps updated_at
- items with deleted_at set are invisible to every worker phase
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, get_args
from uuid import UUID, uuid4

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ERROR_CATEGORIES",
    "PLATFORMS",
    "PRIORITY_VALUES",
    "QUEUE_STATUSES",
    "TERMINAL_STATUSES",
    "ErrorCategory",
    "InvalidTransitionError",
    "Platform",
    "PublishError",
    "PublishResult",
    "PublishingQueueItem",
    "QueueStatus",
    "can_transition",
    "ensure_transition",
]


QueueStatus = Literal["pending", "queued", "publishing", "published", "failed", "cancelled"]

Platform = Literal[
    "wordpress",
    "webflow",
    "shopify",
    "ghost",
    "notion",
    "squarespace",
    "wix",
    "contentful",
    "strapi",
    "custom",
]

ErrorCategory = Literal[
    "network",
    "timeout",
    "rate_limit",
    "auth",
    "validation",
    "server_error",
    "unknown",
]

QUEUE_STATUSES: tuple[str, ...] = get_args(QueueStatus)
PLATFORMS: tuple[str, ...] = get_args(Platform)
ERROR_CATEGORIES: tuple[str, ...] = get_args(ErrorCategory)

TERMINAL_STATUSES = frozenset({"published", "cancelled"})

PRIORITY_VALUES: dict[str, int] = {
    "low": 0,
    "normal": 5,
    "high": 10,
    "urgent": 20,
}

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"queued", "publishing", "cancelled"}),
    "queued": frozenset({"publishing", "cancelled"}),
    "publishing": frozenset({"published", "failed"}),
    "failed": frozenset({"pending", "cancelled"}),
    "published": frozenset(),
    "cancelled": frozenset(),
}


class InvalidTransitionError(ValueError):
    """Raised when a status change is not an edge of the state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid transition: {current} -> {target}")
        self.current = current
        self.target = target


class PublishError(Exception):
    """
    Failure reported by a publish executor.

    Executors may attach an explicit category or the HTTP status code
    returned by the CMS so the classifier does not have to guess from
    the message.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if current not in ALLOWED_TRANSITIONS:
        raise ValueError(f"Unknown state: {current}")
    if target not in ALLOWED_TRANSITIONS:
        raise ValueError(f"Unknown target state: {target}")
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class PublishResult:
    """What a CMS publish returns on success."""

    published_url: str | None = None
    published_post_id: str | None = None
    published_data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=False)
class PublishingQueueItem:
    """Publishing queue item (one article, one target platform)."""

    organization_id: UUID
    article_id: UUID
    platform: Platform
    # Fields with defaults must follow non-default fields
    id: UUID = field(default_factory=uuid4)
    status: QueueStatus = "pending"
    priority: int = 0
    scheduled_for: datetime | None = None
    retry_after: datetime | None = None
    retry_count: int = 0
    max_retries: int = 3
    error_type: ErrorCategory | None = None
    error_message: str | None = None
    integration_id: UUID | None = None
    published_url: str | None = None
    published_post_id: str | None = None
    published_data: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_retry(self) -> bool:
        return self.status == "failed" and self.retry_count < self.max_retries
