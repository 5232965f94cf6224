from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.components.publishing_queue import QueueError, QueueStats
from src.components.publishing_worker import (
    LanePreview,
    PhaseResult,
    QueueStatusOutput,
    WorkerResult,
)
from src.core.entities import PRIORITY_VALUES, Platform, PublishingQueueItem, QueueStatus


# --- Worker ---
class WorkerRunRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    platform: Platform | None = None
    organization_id: UUID | None = None
    limit: int | None = Field(default=None, ge=1)


class PhaseResultModel(BaseModel):
    name: str
    processed: int
    succeeded: int
    failed: int
    skipped: int
    duration_ms: int
    error: str | None = None


class WorkerResultModel(BaseModel):
    phases: list[PhaseResultModel]
    total_processed: int
    total_succeeded: int
    total_failed: int
    total_skipped: int
    total_duration_ms: int
    reclaimed: int = 0


# --- Queue Items ---
class QueueItemModel(BaseModel):
    id: UUID
    organization_id: UUID
    article_id: UUID
    platform: Platform
    status: QueueStatus
    priority: int
    scheduled_for: datetime | None = None
    retry_after: datetime | None = None
    retry_count: int
    max_retries: int
    error_type: str | None = None
    error_message: str | None = None
    integration_id: UUID | None = None
    published_url: str | None = None
    published_post_id: str | None = None
    published_data: dict[str, Any] = {}
    metadata: dict[str, Any] = {}
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class LanePreviewModel(BaseModel):
    count: int
    items: list[QueueItemModel]


class EnqueueRequest(BaseModel):
    organization_id: UUID
    article_id: UUID
    platform: str
    # Accepts a number or a named level (low, normal, high, urgent)
    priority: int = 0
    scheduled_for: datetime | None = None
    max_retries: int = 3
    integration_id: UUID | None = None
    metadata: dict[str, Any] = {}
    # IANA zone a naive scheduled_for is given in; UTC when omitted
    timezone: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def named_priority(cls, value: Any) -> Any:
        if isinstance(value, str) and value in PRIORITY_VALUES:
            return PRIORITY_VALUES[value]
        return value


class RescheduleRequest(BaseModel):
    scheduled_for: datetime
    timezone: str | None = None


class QueueErrorModel(BaseModel):
    code: str
    message: str
    item_id: UUID | None = None
    field: str | None = None


class QueueStatsModel(BaseModel):
    total: int
    by_status: dict[str, int]
    by_platform: dict[str, int]
    failed_count: int
    publishing_count: int
    avg_retry_count: float


# --- Converters ---
def phase_to_model(phase: PhaseResult) -> PhaseResultModel:
    return PhaseResultModel(
        name=phase.name,
        processed=phase.processed,
        succeeded=phase.succeeded,
        failed=phase.failed,
        skipped=phase.skipped,
        duration_ms=phase.duration_ms,
        error=phase.error,
    )


def worker_result_to_model(result: WorkerResult) -> WorkerResultModel:
    return WorkerResultModel(
        phases=[phase_to_model(p) for p in result.phases],
        total_processed=result.total_processed,
        total_succeeded=result.total_succeeded,
        total_failed=result.total_failed,
        total_skipped=result.total_skipped,
        total_duration_ms=result.total_duration_ms,
        reclaimed=result.reclaimed,
    )


def item_to_model(item: PublishingQueueItem) -> QueueItemModel:
    return QueueItemModel(
        id=item.id,
        organization_id=item.organization_id,
        article_id=item.article_id,
        platform=item.platform,
        status=item.status,
        priority=item.priority,
        scheduled_for=item.scheduled_for,
        retry_after=item.retry_after,
        retry_count=item.retry_count,
        max_retries=item.max_retries,
        error_type=item.error_type,
        error_message=item.error_message,
        integration_id=item.integration_id,
        published_url=item.published_url,
        published_post_id=item.published_post_id,
        published_data=item.published_data,
        metadata=item.metadata,
        queued_at=item.queued_at,
        started_at=item.started_at,
        completed_at=item.completed_at,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def lane_to_model(lane: LanePreview) -> LanePreviewModel:
    return LanePreviewModel(count=lane.count, items=[item_to_model(i) for i in lane.items])


def status_to_payload(status: QueueStatusOutput) -> dict[str, Any]:
    return {
        "scheduled": lane_to_model(status.scheduled).model_dump(mode="json"),
        "queued": lane_to_model(status.queued).model_dump(mode="json"),
        "retry": lane_to_model(status.retry).model_dump(mode="json"),
    }


def errors_to_models(errors: list[QueueError]) -> list[QueueErrorModel]:
    return [
        QueueErrorModel(code=e.code, message=e.message, item_id=e.item_id, field=e.field)
        for e in errors
    ]


def stats_to_model(stats: QueueStats) -> QueueStatsModel:
    return QueueStatsModel(
        total=stats.total,
        by_status=stats.by_status,
        by_platform=stats.by_platform,
        failed_count=stats.failed_count,
        publishing_count=stats.publishing_count,
        avg_retry_count=stats.avg_retry_count,
    )
