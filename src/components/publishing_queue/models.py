"""
Publishing queue component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from src.core.entities import Platform, PublishingQueueItem, QueueStatus

# --- Validation Errors ---


@dataclass(frozen=True)
class QueueError:
    """Queue operation error."""

    code: str
    message: str
    item_id: UUID | None = None
    field: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class EnqueueInput:
    """Input for queueing an article for publishing."""

    organization_id: UUID
    article_id: UUID
    platform: str
    priority: int = 0
    scheduled_for: datetime | None = None
    max_retries: int = 3
    integration_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    # IANA zone for a naive scheduled_for; UTC when None
    timezone: str | None = None


@dataclass(frozen=True)
class CancelInput:
    """Input for cancelling an item."""

    item_id: UUID


@dataclass(frozen=True)
class RetryInput:
    """Input for retrying a failed item."""

    item_id: UUID


@dataclass(frozen=True)
class RescheduleInput:
    """Input for moving a pending item to a new publish time."""

    item_id: UUID
    scheduled_for: datetime
    timezone: str | None = None


@dataclass(frozen=True)
class DeleteInput:
    """Input for soft-deleting an item."""

    item_id: UUID


@dataclass(frozen=True)
class GetItemInput:
    """Input for getting an item."""

    item_id: UUID


@dataclass(frozen=True)
class ListInput:
    """Input for listing an organization's queue."""

    organization_id: UUID
    status: QueueStatus | None = None
    platform: Platform | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class UpcomingInput:
    """Input for listing an organization's upcoming scheduled items."""

    organization_id: UUID
    platform: Platform | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class StatsInput:
    """Input for queue statistics."""

    organization_id: UUID


# --- Output Models ---


@dataclass(frozen=True)
class QueueOutput:
    """Output for single-item operations."""

    item: PublishingQueueItem | None
    errors: list[QueueError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class QueueListOutput:
    """Output for list operations. total counts all matches, not the page."""

    items: list[PublishingQueueItem]
    total: int


@dataclass(frozen=True)
class QueueStats:
    """Queue statistics for one organization."""

    total: int
    by_status: dict[str, int]
    by_platform: dict[str, int]
    failed_count: int
    publishing_count: int
    avg_retry_count: float
