"""
QueueService - Publishing queue management.

Creates queue items and applies the user-driven changes (cancel, retry,
reschedule, delete). The worker owns every other transition.

Scheduled times may be given as wall-clock times in an IANA zone; they
are stored in UTC.

Functional Core - validation is pure; persistence goes through the repo port.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.components.retry import (
    DEFAULT_POLICY,
    ErrorClassification,
    RetryPolicy,
    calculate_next_retry,
    can_retry,
    is_retryable,
    suggested_backoff_seconds,
)
from src.core.entities import (
    PLATFORMS,
    PublishingQueueItem,
    can_transition,
)
from src.core.ports.db import ScheduleWindow

from .models import QueueError, QueueListOutput, QueueStats
from .ports import QueueRepoPort, TimePort

logger = logging.getLogger(__name__)

MIN_PRIORITY = 0
MAX_PRIORITY = 100

# --- Validation Functions ---


def validate_item(
    platform: str | None = None,
    priority: int | None = None,
    max_retries: int | None = None,
    published_url: str | None = None,
) -> list[QueueError]:
    """Validate queue item fields. Only the given fields are checked."""
    errors: list[QueueError] = []

    if platform is not None and platform not in PLATFORMS:
        errors.append(
            QueueError(
                code="platform_invalid",
                message=f"Unknown platform: {platform}",
                field="platform",
            )
        )

    if priority is not None and not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        errors.append(
            QueueError(
                code="priority_out_of_range",
                message=f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}",
                field="priority",
            )
        )

    if max_retries is not None and max_retries < 0:
        errors.append(
            QueueError(
                code="max_retries_negative",
                message="max_retries cannot be negative",
                field="max_retries",
            )
        )

    if published_url is not None and not published_url.strip().startswith(
        ("http://", "https://")
    ):
        errors.append(
            QueueError(
                code="url_invalid_scheme",
                message="URL must start with http:// or https://",
                field="published_url",
            )
        )

    return errors


def _not_found(item_id: UUID) -> QueueError:
    return QueueError(code="not_found", message="Queue item not found", item_id=item_id)


# --- Time Zones ---


def resolve_zone(tz_name: str | None) -> ZoneInfo:
    """
    Look up an IANA zone; None means UTC.

    Raises ValueError for unknown or malformed names.
    """
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def to_utc(value: datetime, tz_name: str | None = None) -> datetime:
    """
    Convert a wall-clock time to UTC.

    A naive value is read in tz_name (UTC when not given). An aware value
    keeps its own offset and tz_name is ignored.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=resolve_zone(tz_name))
    return value.astimezone(UTC)


def to_local(value: datetime, tz_name: str | None = None) -> datetime:
    """Convert a UTC timestamp to wall-clock time in tz_name."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(resolve_zone(tz_name))


def validate_timezone(tz_name: str | None) -> list[QueueError]:
    if tz_name is None:
        return []
    try:
        resolve_zone(tz_name)
    except ValueError as e:
        return [QueueError(code="timezone_invalid", message=str(e), field="timezone")]
    return []


def _schedule_metadata(requested: datetime, tz_name: str | None) -> dict[str, Any]:
    return {"timezone": tz_name or "UTC", "scheduled_in_local": requested.isoformat()}


# --- Queue Service ---


class QueueService:
    """
    Publishing queue service.

    Each operation returns (result, errors); errors are never raised.
    """

    def __init__(
        self,
        repo: QueueRepoPort,
        time_port: TimePort | None = None,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self._repo = repo
        self._time = time_port
        self._policy = policy

    def _now(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    def get(self, item_id: UUID) -> PublishingQueueItem | None:
        """Get a non-deleted item."""
        return self._repo.get_by_id(item_id)

    def enqueue(
        self,
        organization_id: UUID,
        article_id: UUID,
        platform: str,
        priority: int = 0,
        scheduled_for: datetime | None = None,
        max_retries: int = 3,
        integration_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        timezone: str | None = None,
    ) -> tuple[PublishingQueueItem | None, list[QueueError]]:
        """
        Add an article to the queue.

        Items with scheduled_for start as 'pending' and wait for the
        promoter; everything else is 'queued' immediately. A naive
        scheduled_for is read in `timezone` (UTC by default).
        """
        errors = validate_item(platform=platform, priority=priority, max_retries=max_retries)
        errors.extend(validate_timezone(timezone))
        if errors:
            return None, errors

        now = self._now()
        item = PublishingQueueItem(
            organization_id=organization_id,
            article_id=article_id,
            platform=platform,  # type: ignore[arg-type]
            priority=priority,
            max_retries=max_retries,
            integration_id=integration_id,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        if scheduled_for is not None:
            item.status = "pending"
            item.scheduled_for = to_utc(scheduled_for, timezone)
            if timezone:
                item.metadata.update(_schedule_metadata(scheduled_for, timezone))
        else:
            item.status = "queued"
            item.queued_at = now

        saved = self._repo.save(item)
        logger.info(
            "Enqueued article %s for %s as %s (item %s)",
            article_id,
            platform,
            saved.status,
            saved.id,
        )
        return saved, []

    def cancel(self, item_id: UUID) -> tuple[PublishingQueueItem | None, list[QueueError]]:
        """Cancel an item that is not publishing and not terminal."""
        item = self._repo.get_by_id(item_id)
        if not item:
            return None, [_not_found(item_id)]

        if not can_transition(item.status, "cancelled"):
            return None, [
                QueueError(
                    code="invalid_status",
                    message=f"Cannot cancel an item in status '{item.status}'",
                    item_id=item_id,
                )
            ]

        now = self._now()
        if not self._repo.conditional_transition(item_id, item.status, "cancelled", {}, now):
            return None, [
                QueueError(
                    code="conflict",
                    message="Item changed while cancelling, try again",
                    item_id=item_id,
                )
            ]

        logger.info("Cancelled queue item %s (was %s)", item_id, item.status)
        return self._repo.get_by_id(item_id), []

    def retry(self, item_id: UUID) -> tuple[PublishingQueueItem | None, list[QueueError]]:
        """
        Send a failed item back to the retry lane.

        The item becomes 'pending' with retry_after set from the backoff
        policy and the recorded error type.
        """
        item = self._repo.get_by_id(item_id)
        if not item:
            return None, [_not_found(item_id)]

        if item.status != "failed":
            return None, [
                QueueError(
                    code="invalid_status",
                    message=f"Only failed items can be retried (status '{item.status}')",
                    item_id=item_id,
                )
            ]

        if not can_retry(item):
            return None, [
                QueueError(
                    code="retries_exhausted",
                    message=f"Item already failed {item.retry_count} of {item.max_retries} times",
                    item_id=item_id,
                )
            ]

        now = self._now()
        classification = None
        if item.error_type:
            classification = ErrorClassification(
                type=item.error_type,
                retryable=is_retryable(item.error_type),
                suggested_backoff_seconds=suggested_backoff_seconds(
                    item.error_type, self._policy
                ),
            )
        retry_after = calculate_next_retry(item.retry_count, now, classification, self._policy)

        moved = self._repo.conditional_transition(
            item_id, "failed", "pending", {"retry_after": retry_after}, now
        )
        if not moved:
            return None, [
                QueueError(
                    code="conflict",
                    message="Item changed while scheduling the retry, try again",
                    item_id=item_id,
                )
            ]

        logger.info("Queue item %s scheduled for retry at %s", item_id, retry_after.isoformat())
        return self._repo.get_by_id(item_id), []

    def reschedule(
        self,
        item_id: UUID,
        scheduled_for: datetime,
        timezone: str | None = None,
    ) -> tuple[PublishingQueueItem | None, list[QueueError]]:
        """
        Move a pending item to a new publish time.

        The new time must be in the future. A pending item waiting on a
        retry backoff leaves the retry lane and waits for the new time.
        """
        errors = validate_timezone(timezone)
        if errors:
            return None, errors

        item = self._repo.get_by_id(item_id)
        if not item:
            return None, [_not_found(item_id)]

        if item.status != "pending":
            return None, [
                QueueError(
                    code="invalid_status",
                    message=f"Only pending items can be rescheduled (status '{item.status}')",
                    item_id=item_id,
                )
            ]

        now = self._now()
        scheduled_utc = to_utc(scheduled_for, timezone)
        if scheduled_utc <= now:
            return None, [
                QueueError(
                    code="schedule_in_past",
                    message="Scheduled time must be in the future",
                    item_id=item_id,
                    field="scheduled_for",
                )
            ]

        metadata = {
            **item.metadata,
            **_schedule_metadata(scheduled_for, timezone),
            "rescheduled_at": now.isoformat(),
        }
        if not self._repo.reschedule(item_id, scheduled_utc, metadata, now):
            return None, [
                QueueError(
                    code="conflict",
                    message="Item changed while rescheduling, try again",
                    item_id=item_id,
                )
            ]

        logger.info("Rescheduled queue item %s to %s", item_id, scheduled_utc.isoformat())
        return self._repo.get_by_id(item_id), []

    def upcoming(
        self,
        organization_id: UUID,
        platform: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> QueueListOutput:
        """Pending items scheduled from now on, soonest first."""
        now = self._now()
        start = max(now, to_utc(date_from)) if date_from is not None else now
        window = ScheduleWindow(
            organization_id=organization_id,
            start=start,
            end=to_utc(date_to) if date_to is not None else None,
            platform=platform,
        )
        items = self._repo.list_scheduled(window, limit=max(1, limit), offset=max(0, offset))
        return QueueListOutput(items=items, total=self._repo.count_scheduled(window))

    def soft_delete(self, item_id: UUID) -> list[QueueError]:
        """Hide an item from the worker and from listings."""
        if not self._repo.soft_delete(item_id, self._now()):
            return [_not_found(item_id)]
        logger.info("Soft-deleted queue item %s", item_id)
        return []

    def list_items(
        self,
        organization_id: UUID,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> QueueListOutput:
        """
        List one page of an organization's items, newest first.

        total counts every matching item, not just this page.
        """
        items = self._repo.list_for_organization(
            organization_id,
            status=status,
            platform=platform,
            limit=max(1, limit),
            offset=max(0, offset),
        )
        total = self._repo.count_for_organization(organization_id, status=status, platform=platform)
        return QueueListOutput(items=items, total=total)

    def stats(self, organization_id: UUID) -> QueueStats:
        """Per-organization counts."""
        raw = self._repo.stats_for_organization(organization_id)
        total = raw["total"]
        by_status = raw["by_status"]
        avg = round(raw["retry_sum"] / total, 2) if total else 0.0
        return QueueStats(
            total=total,
            by_status=by_status,
            by_platform=raw["by_platform"],
            failed_count=by_status.get("failed", 0),
            publishing_count=by_status.get("publishing", 0),
            avg_retry_count=avg,
        )


# --- Factory ---


def create_queue_service(
    repo: QueueRepoPort,
    time_port: TimePort | None = None,
    policy: RetryPolicy = DEFAULT_POLICY,
) -> QueueService:
    """Create a queue service."""
    return QueueService(repo, time_port, policy)
