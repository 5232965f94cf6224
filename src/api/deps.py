import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.adapters.clock import SystemClock
from src.adapters.dev_publisher import SimulatedPublishExecutor
from src.adapters.sqlite.queue_store import SQLitePublishingQueueRepo
from src.api.auth_utils import decode_access_token
from src.app_shell.config import build_worker_config
from src.components.publishing_queue import QueueService
from src.components.publishing_worker import PublishingWorker, WorkerConfig
from src.rules.loader import load_rules
from src.rules.models import Rules


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("QUEUE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "queue.db")
        self.rules_path = Path(os.environ.get("QUEUE_RULES_PATH", self.base_dir / "rules.yaml"))
        self.cron_secret = os.environ.get("CRON_SECRET", "")
        self.dev_scheduler = os.environ.get("QUEUE_DEV_SCHEDULER", "").lower() in (
            "1",
            "true",
            "yes",
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


def get_worker_config(rules: Rules = Depends(get_rules)) -> WorkerConfig:
    return build_worker_config(rules)


# --- Repos ---
def get_queue_repo(settings: Settings = Depends(get_settings)) -> SQLitePublishingQueueRepo:
    return SQLitePublishingQueueRepo(settings.db_path)


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


_executor_instance: SimulatedPublishExecutor | None = None


def get_publish_executor() -> SimulatedPublishExecutor:
    """Get publish executor singleton."""
    global _executor_instance
    if _executor_instance is None:
        _executor_instance = SimulatedPublishExecutor()
    return _executor_instance


# --- Component Services ---
def get_publishing_worker(
    repo: SQLitePublishingQueueRepo = Depends(get_queue_repo),
    executor: SimulatedPublishExecutor = Depends(get_publish_executor),
    clock: SystemClock = Depends(get_clock),
    config: WorkerConfig = Depends(get_worker_config),
) -> PublishingWorker:
    """Get publishing worker."""
    return PublishingWorker(store=repo, executor=executor, time_port=clock, config=config)


def get_queue_service(
    repo: SQLitePublishingQueueRepo = Depends(get_queue_repo),
    clock: SystemClock = Depends(get_clock),
    config: WorkerConfig = Depends(get_worker_config),
) -> QueueService:
    """Get queue management service."""
    return QueueService(repo=repo, time_port=clock, policy=config.retry_policy)


# --- Auth ---
@dataclass(frozen=True)
class Principal:
    """Caller identified by a bearer token."""

    subject: str
    organization_id: UUID | None = None


bearer_scheme = HTTPBearer(auto_error=False)


def _principal_from_token(token: str) -> Principal | None:
    payload = decode_access_token(token)
    if not payload:
        return None

    subject = payload.get("sub")
    if subject is None or not isinstance(subject, str):
        return None

    org = payload.get("org")
    try:
        organization_id = UUID(org) if isinstance(org, str) else None
    except ValueError:
        return None

    return Principal(subject=subject, organization_id=organization_id)


async def get_optional_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal | None:
    """Resolve the caller, or None when no valid token is present."""
    token = credentials.credentials if credentials else None

    # Cookie fallback (HttpOnly session from the main application)
    cookie_token = request.cookies.get("access_token")
    if not token and cookie_token and cookie_token.startswith("Bearer "):
        token = cookie_token.split(" ", 1)[1]

    if not token:
        return None
    return _principal_from_token(token)


async def get_current_principal(
    principal: Annotated[Principal | None, Depends(get_optional_principal)],
) -> Principal:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal
