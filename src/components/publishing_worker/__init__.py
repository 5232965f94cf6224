"""
Publishing worker component - Phased processing of the publishing queue.
"""

from ._impl import (
    DEFAULT_CONFIG,
    PublishingWorker,
    RunBudget,
    WorkerConfig,
    create_publishing_worker,
    preview_lanes,
)
from .component import run_status, run_worker
from .models import (
    ItemOutcome,
    LanePreview,
    PhaseName,
    PhaseResult,
    QueueStatusOutput,
    WorkerOptions,
    WorkerResult,
)
from .ports import PublishExecutorPort, QueueStorePort, TimePort

__all__ = [
    # Entry points
    "run_status",
    "run_worker",
    # Service
    "DEFAULT_CONFIG",
    "PublishingWorker",
    "RunBudget",
    "WorkerConfig",
    "create_publishing_worker",
    "preview_lanes",
    # Models
    "ItemOutcome",
    "LanePreview",
    "PhaseName",
    "PhaseResult",
    "QueueStatusOutput",
    "WorkerOptions",
    "WorkerResult",
    # Ports
    "PublishExecutorPort",
    "QueueStorePort",
    "TimePort",
]
