"""
Time adapter interface (P3).

All timestamps are timezone-aware UTC. The worker reads "now" once per
operation through this port so tests can pin or advance the clock.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time adapter interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...

    def is_past_or_now(self, utc_dt: datetime) -> bool:
        """
        Check if datetime is at or before now.

        Used for lane eligibility (scheduled_for / retry_after reached).
        """
        ...
