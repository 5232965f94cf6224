"""
PublishingWorker - Phased batch processing of the publishing queue.

One run executes three phases in a fixed order:
1. scheduled: promote pending items whose scheduled_for has arrived to queued
2. queued: publish queued items, highest priority first
3. retry: re-attempt pending items whose retry_after has elapsed

Promotion runs first so items that just became due are published in the
same run. Retry runs last and only gets the publish budget the queued
phase left over, so retries never starve fresh items.

Key behaviors:
- Every transition is a status-guarded compare-and-swap in the store
- A lost guard is never an error: the item is left for the next run
- One item's failure never stops the rest of its batch
- A phase that cannot even select its items reports zero progress and
  the run moves on to the next phase
- Once the run's time budget is spent no new item is started
- Before the phases, items stuck in publishing past stale_publishing_ms
  are failed so they can be retried
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from src.components.retry import DEFAULT_POLICY, RetryPolicy, classify_error
from src.core.entities import PublishingQueueItem
from src.core.ports.db import EligibilityQuery

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

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class WorkerConfig:
    """Worker limits, fixed for the lifetime of a worker instance."""

    max_items_per_run: int = 20
    max_processing_time_ms: int = 120_000
    queued_batch_size: int = 10
    retry_batch_size: int = 20
    preview_limit: int = 10
    # publishing rows older than this are failed by reclaim_stale
    stale_publishing_ms: int = 600_000
    retry_policy: RetryPolicy = DEFAULT_POLICY


DEFAULT_CONFIG = WorkerConfig()


# --- Time Budget ---


class RunBudget:
    """Wall-clock budget shared by all phases of one run."""

    def __init__(self, budget_ms: int, timer: Callable[[], float]) -> None:
        self._timer = timer
        self._started = timer()
        self._budget_seconds = budget_ms / 1000

    def elapsed_ms(self) -> int:
        return int((self._timer() - self._started) * 1000)

    def expired(self) -> bool:
        return (self._timer() - self._started) >= self._budget_seconds


# --- Lane Queries ---


def _scheduled_query(
    now: datetime,
    platform: str | None,
    organization_id: UUID | None,
    limit: int,
) -> EligibilityQuery:
    # Items waiting on a retry backoff belong to the retry lane even
    # when their original scheduled_for has long passed.
    return EligibilityQuery(
        status="pending",
        now=now,
        due_field="scheduled_for",
        require_null=("retry_after",),
        platform=platform,
        organization_id=organization_id,
        order="scheduled",
        limit=limit,
    )


def _queued_query(
    now: datetime,
    platform: str | None,
    organization_id: UUID | None,
    limit: int,
) -> EligibilityQuery:
    return EligibilityQuery(
        status="queued",
        now=now,
        platform=platform,
        organization_id=organization_id,
        order="priority",
        limit=limit,
    )


def _retry_query(
    now: datetime,
    platform: str | None,
    organization_id: UUID | None,
    limit: int,
) -> EligibilityQuery:
    return EligibilityQuery(
        status="pending",
        now=now,
        due_field="retry_after",
        platform=platform,
        organization_id=organization_id,
        order="retry",
        limit=limit,
    )


def _stale_query(
    cutoff: datetime,
    platform: str | None,
    organization_id: UUID | None,
    limit: int,
) -> EligibilityQuery:
    return EligibilityQuery(
        status="publishing",
        now=cutoff,
        due_field="started_at",
        platform=platform,
        organization_id=organization_id,
        order="created",
        limit=limit,
    )


def preview_lanes(
    store: QueueStorePort,
    now: datetime,
    options: WorkerOptions,
    preview_limit: int,
) -> QueueStatusOutput:
    """Count and preview what each phase would pick up at `now`. Read-only."""

    def lane(query: EligibilityQuery) -> LanePreview:
        return LanePreview(
            count=store.count_eligible(query),
            items=tuple(store.select_eligible(query)),
        )

    platform, org = options.platform, options.organization_id
    return QueueStatusOutput(
        scheduled=lane(_scheduled_query(now, platform, org, preview_limit)),
        queued=lane(_queued_query(now, platform, org, preview_limit)),
        retry=lane(_retry_query(now, platform, org, preview_limit)),
    )


# --- PublishingWorker ---


class PublishingWorker:
    """
    Publishing queue worker.

    Holds no state between runs; everything lives in the queue store.
    """

    def __init__(
        self,
        store: QueueStorePort,
        executor: PublishExecutorPort,
        time_port: TimePort | None = None,
        config: WorkerConfig | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._executor = executor
        self._time = time_port
        self._config = config or DEFAULT_CONFIG
        self._timer = timer

    @property
    def config(self) -> WorkerConfig:
        return self._config

    def _now_utc(self) -> datetime:
        if self._time:
            return self._time.now_utc()
        return datetime.now(UTC)

    def _clamp(self, requested: int | None, default: int) -> int:
        """Cap a requested batch size at max_items_per_run."""
        value = default if requested is None else requested
        return max(0, min(value, self._config.max_items_per_run))

    def _new_budget(self) -> RunBudget:
        return RunBudget(self._config.max_processing_time_ms, self._timer)

    # --- Phase Loop ---

    def _run_phase(
        self,
        name: PhaseName,
        query: EligibilityQuery,
        handle: Callable[[PublishingQueueItem], ItemOutcome],
        budget: RunBudget,
    ) -> PhaseResult:
        """
        Select a lane and handle each item.

        Item-level exceptions are caught here; phase-level ones (the
        selection itself failing) end the phase with error set.
        """
        started = self._timer()
        result = PhaseResult(name=name)

        try:
            if query.limit <= 0 or budget.expired():
                return result

            items = self._store.select_eligible(query)

            for index, item in enumerate(items):
                if budget.expired():
                    result.skipped += len(items) - index
                    logger.warning(
                        "Time budget exhausted in %s phase; %d item(s) left for next run",
                        name,
                        len(items) - index,
                    )
                    break

                try:
                    outcome = handle(item)
                except Exception:
                    logger.exception("Unexpected error on item %s in %s phase", item.id, name)
                    outcome = "failed"

                result.record(outcome)

        except Exception as e:
            logger.exception("%s phase aborted", name)
            result.error = str(e) or e.__class__.__name__
        finally:
            result.duration_ms = int((self._timer() - started) * 1000)

        return result

    # --- Item Handlers ---

    def _promote_item(self, item: PublishingQueueItem) -> ItemOutcome:
        now = self._now_utc()
        moved = self._store.conditional_transition(
            item.id,
            "pending",
            "queued",
            {"queued_at": now},
            now,
        )
        if moved:
            return "succeeded"

        # Someone else moved it; it is unchanged for us and reconsidered next run
        logger.debug("Item %s no longer pending, not promoted", item.id)
        return "failed"

    def process_item(self, item: PublishingQueueItem, from_status: str) -> ItemOutcome:
        """
        Publish one item: start -> publish -> complete | fail.

        The executor is only called once this worker owns the item
        (mark_started succeeded).
        """
        started = self._store.mark_started(item.id, from_status, self._now_utc())
        if started is None:
            logger.debug("Item %s no longer %s, skipped", item.id, from_status)
            return "skipped"

        try:
            result = self._executor.publish(started)
        except Exception as exc:
            classification = classify_error(exc, self._config.retry_policy)
            message = str(exc) or exc.__class__.__name__
            logger.warning(
                "Publish failed for item %s on %s [%s]: %s",
                item.id,
                started.platform,
                classification.type,
                message,
            )
            self._record_failure(item.id, message, classification.type)
            return "failed"

        try:
            recorded = self._store.mark_completed(item.id, result, self._now_utc())
        except Exception:
            logger.exception("Item %s published but completion could not be written", item.id)
            self._record_failure(
                item.id, "Published but the result could not be recorded", "unknown"
            )
            return "failed"

        if not recorded:
            logger.warning("Item %s published but completion was not recorded", item.id)
        return "succeeded"

    def _record_failure(self, item_id: UUID, message: str, error_type: str) -> None:
        """
        Best-effort publishing -> failed.

        If even this write fails the item stays 'publishing' until
        reclaim_stale picks it up.
        """
        try:
            self._store.mark_failed(item_id, message, error_type, self._now_utc())
        except Exception:
            logger.exception("Could not record failure for item %s", item_id)

    def reclaim_stale(
        self,
        platform: str | None = None,
        organization_id: UUID | None = None,
    ) -> int:
        """
        Fail items stuck in 'publishing' for longer than stale_publishing_ms.

        Such items belong to a run that died or could not write an outcome.
        Failing them (error_type 'timeout') makes them retryable again.
        Returns the number of items reclaimed.
        """
        now = self._now_utc()
        stale_ms = self._config.stale_publishing_ms
        query = _stale_query(
            now - timedelta(milliseconds=stale_ms),
            platform,
            organization_id,
            self._config.max_items_per_run,
        )

        reclaimed = 0
        for item in self._store.select_eligible(query):
            message = f"Publishing did not finish within {stale_ms // 1000}s"
            if self._store.mark_failed(item.id, message, "timeout", now):
                reclaimed += 1
                logger.warning(
                    "Reclaimed item %s stuck in publishing since %s", item.id, item.started_at
                )
        return reclaimed

    # --- Phases ---

    def promote_scheduled(
        self,
        platform: str | None = None,
        organization_id: UUID | None = None,
        limit: int | None = None,
        budget: RunBudget | None = None,
    ) -> PhaseResult:
        """Phase 1: pending items whose scheduled_for has arrived -> queued."""
        query = _scheduled_query(
            self._now_utc(),
            platform,
            organization_id,
            self._clamp(limit, self._config.max_items_per_run),
        )
        return self._run_phase("scheduled", query, self._promote_item, budget or self._new_budget())

    def publish_queued(
        self,
        platform: str | None = None,
        organization_id: UUID | None = None,
        limit: int | None = None,
        budget: RunBudget | None = None,
    ) -> PhaseResult:
        """Phase 2: publish queued items, highest priority first."""
        query = _queued_query(
            self._now_utc(),
            platform,
            organization_id,
            self._clamp(limit, self._config.queued_batch_size),
        )
        return self._run_phase(
            "queued",
            query,
            lambda item: self.process_item(item, "queued"),
            budget or self._new_budget(),
        )

    def process_retries(
        self,
        platform: str | None = None,
        organization_id: UUID | None = None,
        limit: int | None = None,
        budget: RunBudget | None = None,
    ) -> PhaseResult:
        """Phase 3: re-attempt pending items whose retry_after has elapsed."""
        query = _retry_query(
            self._now_utc(),
            platform,
            organization_id,
            self._clamp(limit, self._config.retry_batch_size),
        )
        return self._run_phase(
            "retry",
            query,
            lambda item: self.process_item(item, "pending"),
            budget or self._new_budget(),
        )

    # --- Orchestration ---

    def run(self, options: WorkerOptions | None = None) -> WorkerResult:
        """
        Run all three phases once and aggregate their results.

        Never raises for item or phase failures.
        """
        options = options or WorkerOptions()
        budget = self._new_budget()
        limit = self._clamp(options.limit, self._config.max_items_per_run)

        try:
            reclaimed = self.reclaim_stale(options.platform, options.organization_id)
        except Exception:
            logger.exception("Reclaiming stale publishing items failed")
            reclaimed = 0

        phases: list[PhaseResult] = []

        phases.append(
            self.promote_scheduled(options.platform, options.organization_id, limit, budget)
        )

        queued = self.publish_queued(options.platform, options.organization_id, limit, budget)
        phases.append(queued)

        # Retry gets whatever publish budget the queued phase left
        phases.append(
            self.process_retries(
                options.platform,
                options.organization_id,
                max(0, limit - queued.processed),
                budget,
            )
        )

        result = WorkerResult.from_phases(phases, budget.elapsed_ms(), reclaimed=reclaimed)

        logger.info(
            "Worker run: %d processed, %d succeeded, %d failed, %d skipped, %d reclaimed in %dms",
            result.total_processed,
            result.total_succeeded,
            result.total_failed,
            result.total_skipped,
            result.reclaimed,
            result.total_duration_ms,
        )
        for phase in phases:
            if phase.error:
                logger.error("Phase %s failed: %s", phase.name, phase.error)

        return result

    def status(self, options: WorkerOptions | None = None) -> QueueStatusOutput:
        """Report what each phase would pick up right now."""
        return preview_lanes(
            self._store,
            self._now_utc(),
            options or WorkerOptions(),
            self._config.preview_limit,
        )


# --- Factory ---


def create_publishing_worker(
    store: QueueStorePort,
    executor: PublishExecutorPort,
    time_port: TimePort | None = None,
    config: WorkerConfig | None = None,
) -> PublishingWorker:
    """Create a PublishingWorker."""
    return PublishingWorker(
        store=store,
        executor=executor,
        time_port=time_port,
        config=config,
    )
