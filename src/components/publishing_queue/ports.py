"""
Publishing queue component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from src.core.entities import PublishingQueueItem
from src.core.ports.db import ScheduleWindow


class QueueRepoPort(Protocol):
    """Repository interface for queue management."""

    def get_by_id(self, item_id: UUID) -> PublishingQueueItem | None:
        """Get a non-deleted item by ID."""
        ...

    def save(self, item: PublishingQueueItem) -> PublishingQueueItem:
        """Insert or overwrite an item."""
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

    def list_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        """List an organization's items."""
        ...

    def count_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
    ) -> int:
        """Count an organization's items."""
        ...

    def list_scheduled(
        self,
        window: ScheduleWindow,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        """Upcoming scheduled items."""
        ...

    def count_scheduled(self, window: ScheduleWindow) -> int:
        """Count upcoming scheduled items."""
        ...

    def reschedule(
        self,
        item_id: UUID,
        scheduled_for: datetime,
        metadata: dict[str, Any],
        now: datetime,
    ) -> bool:
        """Guarded scheduled_for update on a pending item."""
        ...

    def soft_delete(self, item_id: UUID, now: datetime) -> bool:
        """Stamp deleted_at."""
        ...

    def stats_for_organization(self, organization_id: UUID) -> dict[str, Any]:
        """Raw counts for an organization."""
        ...


class TimePort(Protocol):
    """Time port."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
