"""
Publishing queue store interface (P1).

Protocol-based interface for the queue table.
Implementations: SQLite (now), Postgres (future).

Every transition is a compare-and-swap on status:

    UPDATE publishing_queue SET ... WHERE id = ? AND status = ? AND deleted_at IS NULL

so two workers racing on the same row cannot both win. This is the only
concurrency-control primitive the worker relies on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol
from uuid import UUID

from src.core.entities import PublishingQueueItem, PublishResult

QueueOrder = Literal["scheduled", "priority", "retry", "created"]


@dataclass(frozen=True)
class EligibilityQuery:
    """
    Selection criteria for a worker lane.

    Soft-deleted rows are always excluded. When due_field is set, the
    field must be non-null and at or before `now`. Fields named in
    require_null must be NULL. A due started_at selects publishing rows
    that were claimed before `now` and never finished.

    Orderings (ties broken deterministically):
    - scheduled: scheduled_for ASC, priority DESC, created_at ASC, id ASC
    - priority:  priority DESC, queued_at ASC, created_at ASC, id ASC
    - retry:     retry_after ASC, priority DESC, created_at ASC, id ASC
    - created:   created_at DESC, id ASC
    """

    status: str
    now: datetime
    due_field: Literal["scheduled_for", "retry_after", "started_at"] | None = None
    require_null: tuple[Literal["scheduled_for", "retry_after"], ...] = ()
    platform: str | None = None
    organization_id: UUID | None = None
    order: QueueOrder = "created"
    limit: int = 10


@dataclass(frozen=True)
class ScheduleWindow:
    """
    Upcoming scheduled items of one organization.

    Matches pending rows with retry_after NULL and scheduled_for in
    [start, end] (end open when None).
    """

    organization_id: UUID
    start: datetime
    end: datetime | None = None
    platform: str | None = None


class PublishingQueueRepoPort(Protocol):
    """
    Repository for publishing queue items.

    Invariants:
    - No query returns rows with deleted_at set
    - Every status-changing write stamps updated_at
    - Guarded writes return False (or None) when the guard is lost
    """

    # --- Worker operations ---

    def select_eligible(self, query: EligibilityQuery) -> list[PublishingQueueItem]:
        """Select items matching a lane's criteria, ordered and capped."""
        ...

    def count_eligible(self, query: EligibilityQuery) -> int:
        """Count all items matching a lane's criteria (limit ignored)."""
        ...

    def conditional_transition(
        self,
        item_id: UUID,
        from_status: str,
        to_status: str,
        fields: dict[str, Any],
        now: datetime,
    ) -> bool:
        """Move an item from one status to another if it is still in from_status."""
        ...

    def mark_started(
        self,
        item_id: UUID,
        from_status: str,
        now: datetime,
    ) -> PublishingQueueItem | None:
        """Transition to 'publishing' and stamp started_at. None if guard lost."""
        ...

    def mark_completed(
        self,
        item_id: UUID,
        result: PublishResult,
        now: datetime,
    ) -> bool:
        """Transition publishing -> published and record the publish result."""
        ...

    def mark_failed(
        self,
        item_id: UUID,
        message: str,
        error_type: str,
        now: datetime,
    ) -> bool:
        """Transition publishing -> failed, record the error, bump retry_count."""
        ...

    # --- Management operations ---

    def get_by_id(self, item_id: UUID) -> PublishingQueueItem | None:
        """Get a non-deleted item by ID."""
        ...

    def save(self, item: PublishingQueueItem) -> PublishingQueueItem:
        """Insert a new item (or overwrite an existing one)."""
        ...

    def list_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        """List an organization's items, newest first."""
        ...

    def count_for_organization(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
    ) -> int:
        """Count an organization's items under the same filters as the listing."""
        ...

    def list_scheduled(
        self,
        window: ScheduleWindow,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PublishingQueueItem]:
        """Pending items scheduled inside the window, soonest first."""
        ...

    def count_scheduled(self, window: ScheduleWindow) -> int:
        """Count pending items scheduled inside the window."""
        ...

    def reschedule(
        self,
        item_id: UUID,
        scheduled_for: datetime,
        metadata: dict[str, Any],
        now: datetime,
    ) -> bool:
        """
        Move a pending item to a new scheduled_for and clear retry_after.

        Guarded on status 'pending'. Returns False when the guard is lost.
        """
        ...

    def soft_delete(self, item_id: UUID, now: datetime) -> bool:
        """Stamp deleted_at. Returns False if missing or already deleted."""
        ...

    def stats_for_organization(self, organization_id: UUID) -> dict[str, Any]:
        """Raw counts for an organization (by status, by platform, retry sum)."""
        ...
