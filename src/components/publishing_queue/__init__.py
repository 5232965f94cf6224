"""
Publishing queue component - Queue item management.

Enqueue, scheduling, cancel, retry, soft-delete, listing and statistics.
"""

from ._impl import (
    QueueService,
    create_queue_service,
    resolve_zone,
    to_local,
    to_utc,
    validate_item,
    validate_timezone,
)
from .component import (
    run_cancel,
    run_delete,
    run_enqueue,
    run_get,
    run_list,
    run_reschedule,
    run_retry,
    run_stats,
    run_upcoming,
)
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
from .ports import QueueRepoPort, TimePort

__all__ = [
    # Entry points
    "run_enqueue",
    "run_cancel",
    "run_retry",
    "run_delete",
    "run_get",
    "run_list",
    "run_stats",
    "run_reschedule",
    "run_upcoming",
    # Input models
    "EnqueueInput",
    "CancelInput",
    "RetryInput",
    "DeleteInput",
    "GetItemInput",
    "ListInput",
    "StatsInput",
    "RescheduleInput",
    "UpcomingInput",
    # Output models
    "QueueOutput",
    "QueueListOutput",
    "QueueStats",
    "QueueError",
    # Ports
    "QueueRepoPort",
    "TimePort",
    # Service
    "QueueService",
    "create_queue_service",
    "validate_item",
    "validate_timezone",
    # Time zones
    "resolve_zone",
    "to_local",
    "to_utc",
]
