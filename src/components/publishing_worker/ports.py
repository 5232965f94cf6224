"""
Publishing worker port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from src.core.entities import PublishingQueueItem, PublishResult
from src.core.ports.db import EligibilityQuery


class QueueStorePort(Protocol):
    """The slice of the queue store the worker needs."""

    def select_eligible(self, query: EligibilityQuery) -> list[PublishingQueueItem]:
        """Select items for a lane."""
        ...

    def count_eligible(self, query: EligibilityQuery) -> int:
        """Count items for a lane."""
        ...

    def conditional_transition(
        self,
        item_id: UUID,
        from_status: str,
        to_status: str,
        fields: dict[str, Any],
        now: datetime,
    ) -> bool:
        """Status compare-and-swap."""
        ...

    def mark_started(
        self,
        item_id: UUID,
        from_status: str,
        now: datetime,
    ) -> PublishingQueueItem | None:
        """Enter 'publishing'. None if the item moved on."""
        ...

    def mark_completed(self, item_id: UUID, result: PublishResult, now: datetime) -> bool:
        """Enter 'published'."""
        ...

    def mark_failed(self, item_id: UUID, message: str, error_type: str, now: datetime) -> bool:
        """Enter 'failed'."""
        ...


class PublishExecutorPort(Protocol):
    """CMS publish capability."""

    def publish(self, item: PublishingQueueItem) -> PublishResult:
        """
        Publish one item to its platform.

        Must be idempotent. Raises on failure (ideally PublishError).
        """
        ...


class TimePort(Protocol):
    """Clock used for lane eligibility and lifecycle stamps."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
