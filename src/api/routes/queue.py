"""
Publishing Queue Management API Routes.

Enqueue, schedule, inspect, cancel, retry and delete queue items. Tokens
that carry an "org" claim only see their own organization's items; items
of other organizations are reported as not found.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from src.api.deps import Principal, get_current_principal, get_queue_service
from src.api.schemas import (
    EnqueueRequest,
    QueueItemModel,
    QueueStatsModel,
    RescheduleRequest,
    errors_to_models,
    item_to_model,
    stats_to_model,
)
from src.components.publishing_queue import (
    CancelInput,
    DeleteInput,
    EnqueueInput,
    GetItemInput,
    ListInput,
    QueueError,
    QueueOutput,
    QueueService,
    RescheduleInput,
    RetryInput,
    StatsInput,
    UpcomingInput,
    run_cancel,
    run_delete,
    run_enqueue,
    run_get,
    run_list,
    run_reschedule,
    run_retry,
    run_stats,
    run_upcoming,
    to_local,
    validate_timezone,
)
from src.core.entities import PublishingQueueItem

router = APIRouter()


# --- Helpers ---


def _can_access(principal: Principal, organization_id: UUID) -> bool:
    return principal.organization_id is None or principal.organization_id == organization_id


def _check_org(principal: Principal, organization_id: UUID) -> None:
    if not _can_access(principal, organization_id):
        raise HTTPException(status_code=403, detail="Forbidden")


def _raise_for_errors(errors: list[QueueError]) -> NoReturn:
    codes = {e.code for e in errors}
    detail = [e.model_dump(mode="json") for e in errors_to_models(errors)]
    if "not_found" in codes:
        raise HTTPException(status_code=404, detail=detail)
    if "conflict" in codes:
        raise HTTPException(status_code=409, detail=detail)
    raise HTTPException(status_code=400, detail=detail)


def _load_item(item_id: UUID, principal: Principal, service: QueueService) -> PublishingQueueItem:
    """404 unless the item exists and belongs to the caller's organization."""
    output = run_get(GetItemInput(item_id=item_id), service)
    if output.item is None or not _can_access(principal, output.item.organization_id):
        raise HTTPException(status_code=404, detail="Queue item not found")
    return output.item


def _item_or_raise(output: QueueOutput) -> QueueItemModel:
    if not output.success or output.item is None:
        _raise_for_errors(output.errors)
    return item_to_model(output.item)


# --- Routes ---


@router.post("", response_model=QueueItemModel, status_code=201)
def enqueue_item(
    req: EnqueueRequest,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueItemModel:
    """Queue an article for publishing, now or at scheduled_for."""
    _check_org(principal, req.organization_id)
    output = run_enqueue(
        EnqueueInput(
            organization_id=req.organization_id,
            article_id=req.article_id,
            platform=req.platform,
            priority=req.priority,
            scheduled_for=req.scheduled_for,
            max_retries=req.max_retries,
            integration_id=req.integration_id,
            metadata=req.metadata,
            timezone=req.timezone,
        ),
        service,
    )
    return _item_or_raise(output)


@router.get("")
def list_items(
    organization_id: UUID,
    status: str | None = None,
    platform: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> dict[str, Any]:
    """List an organization's queue, newest first."""
    _check_org(principal, organization_id)
    output = run_list(
        ListInput(
            organization_id=organization_id,
            status=status,  # type: ignore[arg-type]
            platform=platform,  # type: ignore[arg-type]
            limit=limit,
            offset=offset,
        ),
        service,
    )
    return {
        "items": [item_to_model(i).model_dump(mode="json") for i in output.items],
        "count": len(output.items),
        "total": output.total,
    }


@router.get("/stats", response_model=QueueStatsModel)
def queue_stats(
    organization_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueStatsModel:
    """Counts by status and platform."""
    _check_org(principal, organization_id)
    return stats_to_model(run_stats(StatsInput(organization_id=organization_id), service))


@router.get("/schedule")
def upcoming_items(
    organization_id: UUID,
    timezone: str = "UTC",
    platform: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> dict[str, Any]:
    """Upcoming scheduled items, soonest first, with local times in `timezone`."""
    _check_org(principal, organization_id)
    tz_errors = validate_timezone(timezone)
    if tz_errors:
        _raise_for_errors(tz_errors)

    output = run_upcoming(
        UpcomingInput(
            organization_id=organization_id,
            platform=platform,  # type: ignore[arg-type]
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        ),
        service,
    )

    items = []
    for item in output.items:
        data = item_to_model(item).model_dump(mode="json")
        if item.scheduled_for is not None:
            local = to_local(item.scheduled_for, timezone)
            data["scheduled_for_local"] = local.strftime("%Y-%m-%d %H:%M")
        items.append(data)

    return {
        "items": items,
        "count": len(items),
        "total": output.total,
        "timezone": timezone,
    }


@router.get("/{item_id}", response_model=QueueItemModel)
def get_item(
    item_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueItemModel:
    return item_to_model(_load_item(item_id, principal, service))


@router.put("/{item_id}/schedule", response_model=QueueItemModel)
def reschedule_item(
    item_id: UUID,
    req: RescheduleRequest,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueItemModel:
    """Move a pending item to a new publish time."""
    _load_item(item_id, principal, service)
    output = run_reschedule(
        RescheduleInput(item_id=item_id, scheduled_for=req.scheduled_for, timezone=req.timezone),
        service,
    )
    return _item_or_raise(output)


@router.post("/{item_id}/cancel", response_model=QueueItemModel)
def cancel_item(
    item_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueItemModel:
    _load_item(item_id, principal, service)
    return _item_or_raise(run_cancel(CancelInput(item_id=item_id), service))


@router.post("/{item_id}/retry", response_model=QueueItemModel)
def retry_item(
    item_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> QueueItemModel:
    """Send a failed item back to the retry lane."""
    _load_item(item_id, principal, service)
    return _item_or_raise(run_retry(RetryInput(item_id=item_id), service))


@router.delete("/{item_id}")
def delete_item(
    item_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: QueueService = Depends(get_queue_service),
) -> dict[str, Any]:
    _load_item(item_id, principal, service)
    output = run_delete(DeleteInput(item_id=item_id), service)
    if not output.success:
        _raise_for_errors(output.errors)
    return {"success": True}
