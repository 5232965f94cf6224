import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from src.adapters.clock import SystemClock
from src.adapters.dev_jobs import DevWorkerScheduler
from src.adapters.dev_publisher import SimulatedPublishExecutor
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite.queue_store import SQLitePublishingQueueRepo
from src.api.deps import get_settings
from src.app_shell.config import build_worker_config, validate_ops_rules
from src.components.publishing_worker import PublishingWorker
from src.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules, validate environment and migrate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules, settings.data_dir)
        config = build_worker_config(rules)
        SQLiteMigrator(settings.db_path).run_migrations()
        logger.info("Rules loaded from %s", settings.rules_path)
    except Exception:
        logger.critical("Startup configuration failed", exc_info=True)
        sys.exit(1)

    scheduler: DevWorkerScheduler | None = None
    if settings.dev_scheduler:
        worker = PublishingWorker(
            store=SQLitePublishingQueueRepo(settings.db_path),
            executor=SimulatedPublishExecutor(),
            time_port=SystemClock(),
            config=config,
        )
        scheduler = DevWorkerScheduler(
            worker, poll_interval_seconds=rules.scheduler.poll_interval_seconds
        )
        scheduler.start()

    yield

    if scheduler is not None:
        scheduler.stop()


app = FastAPI(
    title="Publishing Queue Worker API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import queue, worker  # noqa: E402

# Worker first so /worker is not captured by /{item_id}
app.include_router(worker.router, prefix="/api/publishing-queue", tags=["Worker"])
app.include_router(queue.router, prefix="/api/publishing-queue", tags=["Queue"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "publishing-queue-worker"}
