"""
Publishing queue component - Queue management entry points.

Shell Layer - wraps QueueService results in component outputs.
"""

from __future__ import annotations

from ._impl import QueueService
from .models import (
    CancelInput,
    DeleteInput,
    EnqueueInput,
    GetItemInput,
    ListInput,
    QueueError,
    QueueListOutput,
    QueueOutput,
    QueueStats,
    RescheduleInput,
    RetryInput,
    StatsInput,
    UpcomingInput,
)


def run_enqueue(input_data: EnqueueInput, service: QueueService) -> QueueOutput:
    """Queue an article for publishing."""
    item, errors = service.enqueue(
        organization_id=input_data.organization_id,
        article_id=input_data.article_id,
        platform=input_data.platform,
        priority=input_data.priority,
        scheduled_for=input_data.scheduled_for,
        max_retries=input_data.max_retries,
        integration_id=input_data.integration_id,
        metadata=input_data.metadata,
        timezone=input_data.timezone,
    )
    return QueueOutput(item=item, errors=errors, success=item is not None)


def run_cancel(input_data: CancelInput, service: QueueService) -> QueueOutput:
    """Cancel a queue item."""
    item, errors = service.cancel(input_data.item_id)
    return QueueOutput(item=item, errors=errors, success=not errors)


def run_retry(input_data: RetryInput, service: QueueService) -> QueueOutput:
    """Schedule a failed item for another attempt."""
    item, errors = service.retry(input_data.item_id)
    return QueueOutput(item=item, errors=errors, success=not errors)


def run_delete(input_data: DeleteInput, service: QueueService) -> QueueOutput:
    """Soft-delete a queue item."""
    errors = service.soft_delete(input_data.item_id)
    return QueueOutput(item=None, errors=errors, success=not errors)


def run_get(input_data: GetItemInput, service: QueueService) -> QueueOutput:
    """Get a queue item."""
    item = service.get(input_data.item_id)
    if not item:
        return QueueOutput(
            item=None,
            errors=[
                QueueError(
                    code="not_found",
                    message="Queue item not found",
                    item_id=input_data.item_id,
                )
            ],
            success=False,
        )
    return QueueOutput(item=item, errors=[], success=True)


def run_list(input_data: ListInput, service: QueueService) -> QueueListOutput:
    """List an organization's queue."""
    return service.list_items(
        input_data.organization_id,
        status=input_data.status,
        platform=input_data.platform,
        limit=input_data.limit,
        offset=input_data.offset,
    )


def run_stats(input_data: StatsInput, service: QueueService) -> QueueStats:
    """Queue statistics for an organization."""
    return service.stats(input_data.organization_id)


def run_reschedule(input_data: RescheduleInput, service: QueueService) -> QueueOutput:
    """Move a pending item to a new publish time."""
    item, errors = service.reschedule(
        input_data.item_id,
        input_data.scheduled_for,
        timezone=input_data.timezone,
    )
    return QueueOutput(item=item, errors=errors, success=not errors)


def run_upcoming(input_data: UpcomingInput, service: QueueService) -> QueueListOutput:
    """Upcoming scheduled items of an organization, soonest first."""
    return service.upcoming(
        input_data.organization_id,
        platform=input_data.platform,
        date_from=input_data.date_from,
        date_to=input_data.date_to,
        limit=input_data.limit,
        offset=input_data.offset,
    )
