import datetime
from typing import Callable, Optional

from ticker import Ticker


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value: str | datetime.datetime) -> datetime.datetime:
    ts = value if isinstance(value, datetime.datetime) else datetime.datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts


def format_duration(seconds: int) -> str:
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins}:{secs:02d}"


class WorkoutTimer:
    """Elapsed time since the session's start timestamp.

    With ``interval=None`` the timer never schedules itself and is advanced
    by calling :meth:`tick`.
    """

    def __init__(
        self,
        clock: Callable[[], datetime.datetime] = _utcnow,
        interval: Optional[float] = 1.0,
    ) -> None:
        self.clock = clock
        self.elapsed = 0
        self._start: datetime.datetime | None = None
        self._ticker = Ticker(self.tick, interval) if interval else None

    @property
    def formatted(self) -> str:
        return format_duration(self.elapsed)

    def set_start(self, start: str | datetime.datetime | None) -> None:
        """Point the timer at ``start``; ``None`` freezes the current value."""
        if start is None:
            self._start = None
            self.stop()
            return
        self._start = parse_timestamp(start)
        self.tick()
        if self._ticker is not None:
            self._ticker.start()

    def tick(self) -> bool:
        if self._start is None:
            return False
        delta = self.clock() - self._start
        self.elapsed = max(0, int(delta.total_seconds()))
        return True

    def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
