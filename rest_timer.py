import logging
from typing import Callable, Optional

from ticker import Ticker
from workout_timer import format_duration

logger = logging.getLogger(__name__)


class RestTimer:
    """Countdown between sets.

    ``max_seconds`` is the denominator for the progress ring: it starts at the
    nominal duration and grows when time is added past it.
    """

    def __init__(
        self,
        interval: Optional[float] = 1.0,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.remaining = 0
        self.max_seconds = 0
        self.active = False
        self.is_complete = False
        self.on_complete = on_complete
        self._ticker = Ticker(self.tick, interval) if interval else None

    @property
    def formatted(self) -> str:
        return format_duration(self.remaining)

    @property
    def progress(self) -> float:
        return self.remaining / self.max_seconds if self.max_seconds > 0 else 0.0

    def activate(self, seconds: int) -> None:
        self.remaining = max(0, int(seconds))
        self.max_seconds = self.remaining
        self.is_complete = False
        self.active = True
        self._start_ticking()

    def deactivate(self) -> None:
        self.active = False
        if self._ticker is not None:
            self._ticker.stop()

    def tick(self) -> bool:
        if not self.active or self.is_complete:
            return False
        if self.remaining <= 1:
            self.remaining = 0
            self.is_complete = True
            logger.debug("Rest timer finished")
            if self.on_complete is not None:
                self.on_complete()
            return False
        self.remaining -= 1
        return True

    def add_time(self, seconds: int) -> None:
        self.remaining += seconds
        self.is_complete = False
        self.max_seconds = max(self.max_seconds, self.remaining)
        if self.active:
            self._start_ticking()

    def subtract_time(self, seconds: int) -> None:
        self.remaining = max(0, self.remaining - seconds)

    def _start_ticking(self) -> None:
        if self._ticker is not None:
            self._ticker.start()
