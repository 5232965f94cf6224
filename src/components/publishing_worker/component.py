"""
Publishing worker component - Entry points.

Moves publishing queue items through scheduled -> queued -> publishing ->
published | failed in bounded batches.

Invariants:
- I1: Items only change status through guarded compare-and-swap writes
- I2: The executor is never called for an item this run did not start
- I3: Soft-deleted items are never selected
- I4: Item failures stay inside their phase; phase failures stay inside the run
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime

from ._impl import DEFAULT_CONFIG, PublishingWorker, WorkerConfig, preview_lanes
from .models import QueueStatusOutput, WorkerOptions, WorkerResult
from .ports import PublishExecutorPort, QueueStorePort, TimePort


def _create_worker(
    store: QueueStorePort,
    executor: PublishExecutorPort,
    time_port: TimePort | None,
    config: WorkerConfig | None,
    timer: Callable[[], float] | None,
) -> PublishingWorker:
    return PublishingWorker(
        store=store,
        executor=executor,
        time_port=time_port,
        config=config,
        timer=timer or time.monotonic,
    )


def run_worker(
    inp: WorkerOptions,
    *,
    store: QueueStorePort,
    executor: PublishExecutorPort,
    time_port: TimePort | None = None,
    config: WorkerConfig | None = None,
    timer: Callable[[], float] | None = None,
) -> WorkerResult:
    """
    Run the full publishing pipeline once.

    Args:
        inp: Platform / organization filters and requested item limit.
        store: Queue store port.
        executor: Publish executor port.
        time_port: Optional time port for timestamps.
        config: Optional worker limits.
        timer: Optional monotonic timer (seconds) for the time budget.

    Returns:
        WorkerResult with one PhaseResult per phase.
    """
    worker = _create_worker(store, executor, time_port, config, timer)
    return worker.run(inp)


def run_status(
    inp: WorkerOptions,
    *,
    store: QueueStorePort,
    time_port: TimePort | None = None,
    config: WorkerConfig | None = None,
) -> QueueStatusOutput:
    """
    Report items ready for each phase.

    Args:
        inp: Platform / organization filters (limit is ignored).
        store: Queue store port.
        time_port: Optional time port for timestamps.
        config: Optional worker limits (preview size).

    Returns:
        QueueStatusOutput with a count and preview per lane.
    """
    now = time_port.now_utc() if time_port else datetime.now(UTC)
    return preview_lanes(store, now, inp, (config or DEFAULT_CONFIG).preview_limit)
