"""
Polling block feed.

An `EventSource` for endpoints that cannot push new-block notifications. The
feed polls a block-number coroutine at a fixed interval and emits the new
block number whenever it advances. A failed poll is reported through the
error callback and ends the feed.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

BlockNumberReader = Callable[[], Awaitable[int]]


class _PollingHandle:
    def __init__(self, task: "asyncio.Task[None]"):
        self._task = task

    def unsubscribe(self) -> None:
        self._task.cancel()

    @property
    def running(self) -> bool:
        return not self._task.done()


class PollingBlockFeed:
    """
    Emit the block number each time it advances.

    Each call to `subscribe()` starts its own polling task on the running
    loop; the multiplexer keeps at most one subscription alive.
    """

    def __init__(self, block_number: BlockNumberReader, interval: float = 1.0):
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        self._block_number = block_number
        self.interval = interval

    def subscribe(
        self,
        on_event: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> _PollingHandle:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._poll(on_event, on_error))
        return _PollingHandle(task)

    async def _poll(self, on_event, on_error) -> None:
        last: Optional[int] = None
        while True:
            try:
                current = await self._block_number()
            except Exception as e:
                logging.debug(f"Block poll failed: {e}")
                on_error(e)
                return
            if last is not None and current != last:
                on_event(current)
            last = current
            await asyncio.sleep(self.interval)
