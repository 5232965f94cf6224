"""
Publishing Worker API Routes.

POST runs the three-phase worker once (external cron or an operator).
GET previews what the next run would pick up.

Authentication:
- CRON_SECRET configured: POST requires a matching x-cron-secret header
- otherwise: a valid bearer token
- GET always requires a bearer token

A token with an "org" claim only reaches its own organization: its runs
and previews are restricted to that organization, and naming another
one is 403.

Errors use a flat {"error": ...} body so cron callers can log them as-is.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from src.api.auth_utils import cron_secret_matches
from src.api.deps import (
    Principal,
    Settings,
    get_optional_principal,
    get_publishing_worker,
    get_settings,
)
from src.api.schemas import WorkerRunRequest, status_to_payload, worker_result_to_model
from src.components.publishing_worker import PublishingWorker, WorkerOptions
from src.core.entities import PLATFORMS

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _org_forbidden(principal: Principal | None, requested: UUID | None) -> bool:
    return (
        principal is not None
        and principal.organization_id is not None
        and requested is not None
        and requested != principal.organization_id
    )


def _scoped_org(principal: Principal | None, requested: UUID | None) -> UUID | None:
    """The organization filter to apply: an org claim always wins."""
    if principal is not None and principal.organization_id is not None:
        return principal.organization_id
    return requested


def _parse_run_request(raw: bytes) -> WorkerRunRequest:
    """Empty body means defaults. Raises ValueError on anything malformed."""
    if not raw.strip():
        return WorkerRunRequest()
    data: Any = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return WorkerRunRequest.model_validate(data)


@router.post("/worker")
async def trigger_worker(
    request: Request,
    settings: Settings = Depends(get_settings),
    principal: Principal | None = Depends(get_optional_principal),
    worker: PublishingWorker = Depends(get_publishing_worker),
) -> JSONResponse:
    """Run scheduled -> queued -> retry once and return the per-phase counts."""
    if settings.cron_secret:
        if not cron_secret_matches(request.headers.get("x-cron-secret"), settings.cron_secret):
            return _error(401, "Unauthorized")
    elif principal is None:
        return _error(401, "Unauthorized")

    try:
        body = _parse_run_request(await request.body())
    except ValidationError as e:
        return _error(400, f"Invalid request body: {e.errors()[0]['msg']}")
    except ValueError as e:
        return _error(400, f"Invalid request body: {e}")

    if _org_forbidden(principal, body.organization_id):
        return _error(403, "Forbidden")

    options = WorkerOptions(
        platform=body.platform,
        organization_id=_scoped_org(principal, body.organization_id),
        limit=body.limit,
    )

    try:
        result = await run_in_threadpool(worker.run, options)
    except Exception:
        logger.exception("POST /api/publishing-queue/worker failed")
        return _error(500, "Internal server error")

    return JSONResponse(
        content={
            "success": True,
            "result": worker_result_to_model(result).model_dump(mode="json"),
        }
    )


@router.get("/worker")
async def worker_status(
    platform: str | None = None,
    organization_id: str | None = None,
    principal: Principal | None = Depends(get_optional_principal),
    worker: PublishingWorker = Depends(get_publishing_worker),
) -> JSONResponse:
    """Count and preview eligible items for each phase."""
    if principal is None:
        return _error(401, "Unauthorized")

    if platform is not None and platform not in PLATFORMS:
        return _error(400, f"Unknown platform: {platform}")

    org_id = None
    if organization_id:
        try:
            org_id = UUID(organization_id)
        except ValueError:
            return _error(400, "organization_id must be a UUID")

    if _org_forbidden(principal, org_id):
        return _error(403, "Forbidden")
    org_id = _scoped_org(principal, org_id)

    try:
        status = await run_in_threadpool(
            worker.status,
            WorkerOptions(platform=platform, organization_id=org_id),  # type: ignore[arg-type]
        )
    except Exception:
        logger.exception("GET /api/publishing-queue/worker failed")
        return _error(500, "Internal server error")

    return JSONResponse(content={"success": True, **status_to_payload(status)})
