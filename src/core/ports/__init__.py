# publishing-queue-worker: Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from src.core.ports.db import (
    EligibilityQuery,
    PublishingQueueRepoPort,
    QueueOrder,
    ScheduleWindow,
)
from src.core.ports.jobs import WorkerRunnerPort, WorkerSchedulerPort
from src.core.ports.time import TimePort

__all__ = [
    # Queue store (P1)
    "EligibilityQuery",
    "PublishingQueueRepoPort",
    "QueueOrder",
    "ScheduleWindow",
    # Worker trigger (P4)
    "WorkerRunnerPort",
    "WorkerSchedulerPort",
    # Time (P3)
    "TimePort",
]
