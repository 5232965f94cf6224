"""
Publishing worker input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal
from uuid import UUID

from src.core.entities import Platform, PublishingQueueItem

PhaseName = Literal["scheduled", "queued", "retry"]

ItemOutcome = Literal["succeeded", "failed", "skipped"]


# --- Input Models ---


@dataclass(frozen=True)
class WorkerOptions:
    """Options for one worker run (or one status query)."""

    platform: Platform | None = None
    organization_id: UUID | None = None
    limit: int | None = None


# --- Output Models ---


@dataclass
class PhaseResult:
    """
    Counters for one phase of a worker run.

    processed counts items actually attempted. Items left untouched
    because the run's time budget ran out are counted in skipped only.
    """

    name: PhaseName
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    error: str | None = None

    def record(self, outcome: ItemOutcome) -> None:
        self.processed += 1
        if outcome == "succeeded":
            self.succeeded += 1
        elif outcome == "failed":
            self.failed += 1
        else:
            self.skipped += 1


@dataclass(frozen=True)
class WorkerResult:
    """Aggregated result of a full worker run."""

    phases: tuple[PhaseResult, ...]
    total_processed: int
    total_succeeded: int
    total_failed: int
    total_skipped: int
    total_duration_ms: int
    # Items failed by the stale-publishing sweep before the phases ran
    reclaimed: int = 0

    @classmethod
    def from_phases(
        cls, phases: list[PhaseResult], duration_ms: int, reclaimed: int = 0
    ) -> WorkerResult:
        return cls(
            phases=tuple(phases),
            total_processed=sum(p.processed for p in phases),
            total_succeeded=sum(p.succeeded for p in phases),
            total_failed=sum(p.failed for p in phases),
            total_skipped=sum(p.skipped for p in phases),
            total_duration_ms=duration_ms,
            reclaimed=reclaimed,
        )

    def phase(self, name: PhaseName) -> PhaseResult | None:
        for p in self.phases:
            if p.name == name:
                return p
        return None


@dataclass(frozen=True)
class LanePreview:
    """Items currently eligible for one phase."""

    count: int
    items: tuple[PublishingQueueItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class QueueStatusOutput:
    """What the next worker run would pick up, per phase."""

    scheduled: LanePreview
    queued: LanePreview
    retry: LanePreview
