"""
Dev Worker Scheduler Adapter (P4 Implementation).

In-process trigger for the publishing worker, for local development.
Production relies on an external cron calling the worker endpoint; this
provides the same behaviour without one.

Key behaviors:
- Runs the worker every poll interval on a daemon thread
- A failing run is logged and the loop keeps going
- trigger_now() runs synchronously for predictable testing
"""

from __future__ import annotations

import logging
import threading

from src.components.publishing_worker import WorkerOptions, WorkerResult
from src.core.ports.jobs import WorkerRunnerPort

logger = logging.getLogger(__name__)


class DevWorkerScheduler:
    """
    Dev scheduler with background polling.

    Implements WorkerSchedulerPort for local development.
    """

    def __init__(
        self,
        runner: WorkerRunnerPort,
        poll_interval_seconds: float = 60.0,
        options: WorkerOptions | None = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            runner: Worker to trigger
            poll_interval_seconds: Interval between runs
            options: Filters passed to every run
        """
        self._runner = runner
        self._poll_interval = poll_interval_seconds
        self._options = options or WorkerOptions()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False
        self._runs = 0

    def start(self) -> None:
        """Start the background scheduler."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="publishing-worker",
            daemon=True,
        )
        self._thread.start()
        self._running = True
        logger.info("Dev worker scheduler started (poll interval: %.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Dev worker scheduler stopped after %d run(s)", self._runs)

    def trigger_now(self) -> WorkerResult:
        """Run the worker immediately."""
        result = self._runner.run(self._options)
        self._runs += 1
        return result

    @property
    def is_running(self) -> bool:
        """Check if scheduler is active."""
        return self._running

    @property
    def runs(self) -> int:
        """Number of completed runs."""
        return self._runs

    def _poll_loop(self) -> None:
        """Background polling loop."""
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                result = self.trigger_now()
                if result.total_processed > 0:
                    logger.info(
                        "Scheduler processed %d items: %d succeeded, %d failed",
                        result.total_processed,
                        result.total_succeeded,
                        result.total_failed,
                    )
            except Exception:
                logger.exception("Error in worker poll loop")


def create_dev_scheduler(
    runner: WorkerRunnerPort,
    poll_interval_seconds: float = 60.0,
    options: WorkerOptions | None = None,
) -> DevWorkerScheduler:
    """
    Create a dev scheduler.

    Args:
        runner: Worker to trigger
        poll_interval_seconds: Interval between runs
        options: Filters passed to every run

    Returns:
        Configured DevWorkerScheduler
    """
    return DevWorkerScheduler(runner, poll_interval_seconds, options)
