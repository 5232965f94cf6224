"""
Simulated CMS publisher.

Stand-in for the per-platform CMS adapters. It waits a moment (to mimic
the network round-trip) and reports success with a placeholder URL.
Safe to call repeatedly for the same item: the URL only depends on the
item ID.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from src.core.entities import PublishingQueueItem, PublishResult

logger = logging.getLogger(__name__)


class SimulatedPublishExecutor:
    """Publish executor that pretends every publish succeeds."""

    def __init__(
        self,
        base_url: str = "https://example.com/article",
        delay_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._delay = delay_seconds
        self._sleep = sleep

    def publish(self, item: PublishingQueueItem) -> PublishResult:
        if self._delay > 0:
            self._sleep(self._delay)

        logger.info(
            "Simulated publish of article %s to %s (item %s)",
            item.article_id,
            item.platform,
            item.id,
        )
        return PublishResult(
            published_url=f"{self._base_url}/{item.id}",
            published_data={
                "worker_processed": True,
                "processed_at": datetime.now(UTC).isoformat(),
            },
        )
