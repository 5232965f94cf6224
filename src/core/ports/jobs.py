"""
Worker trigger interfaces (P4).

The publishing worker is a stateless batch job. It is triggered by:
1. An external cron calling the HTTP endpoint (production)
2. The in-process dev scheduler (local development)
3. The CLI (manual runs)

All triggers call the same orchestrator; the queue store's status
guards make overlapping runs safe.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.components.publishing_worker.models import WorkerOptions, WorkerResult


class WorkerRunnerPort(Protocol):
    """Anything that can run one full worker pass."""

    def run(self, options: WorkerOptions | None = None) -> WorkerResult:
        """
        Run scheduled -> queued -> retry once.

        Notes:
            - Never raises for item or phase failures
            - Safe to call from multiple processes at once
        """
        ...


class WorkerSchedulerPort(Protocol):
    """
    Trigger mechanism for worker runs.

    For in-process: owns a background thread.
    For cron: no-op start/stop (external trigger).
    """

    def start(self) -> None:
        """Start triggering runs."""
        ...

    def stop(self) -> None:
        """Stop triggering runs gracefully."""
        ...

    def trigger_now(self) -> WorkerResult:
        """Run the worker immediately."""
        ...
