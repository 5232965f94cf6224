from datetime import UTC, datetime, timedelta


class SystemClock:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)

    def is_past_or_now(self, utc_dt: datetime) -> bool:
        return utc_dt <= self.now_utc()


class FrozenClock:
    """Clock pinned to a fixed instant; advance() moves it forward."""

    def __init__(self, now: datetime) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def is_past_or_now(self, utc_dt: datetime) -> bool:
        return utc_dt <= self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
