import asyncio
from typing import Callable, Optional


class Ticker:
    """Call ``callback`` every ``interval`` seconds on the running event loop.

    The loop stops when the callback returns ``False`` or :meth:`stop` is
    called.
    """

    def __init__(self, callback: Callable[[], Optional[bool]], interval: float = 1.0) -> None:
        self.callback = callback
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.callback() is False:
                break
