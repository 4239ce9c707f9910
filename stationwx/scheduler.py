from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RequestScheduler:
    """Token-bucket admission queue for upstream calls.

    At most ``capacity`` tasks are started per ``window`` seconds. The bucket
    refills in one batch once a full window has passed since the last reset;
    there is no gradual trickle. Tasks start in submission order.

    The background loop (``start()``) calls ``tick()`` every
    ``tick_interval`` seconds. Tests drive ``tick()`` directly with an
    injected ``clock``.
    """

    def __init__(
        self,
        capacity: int = 20,
        window: float = 60.0,
        tick_interval: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = capacity
        self.window = window
        self.tick_interval = tick_interval
        self._clock = clock
        self._tokens = capacity
        self._last_reset = clock()
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._loop_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def tokens(self) -> int:
        return self._tokens

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def schedule(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Future:
        """Queue ``factory`` and return a future for its eventual result.

        ``factory`` is called only when a token is available. Its exception,
        if any, is set on the returned future and nowhere else.
        """
        fut = asyncio.get_running_loop().create_future()
        self._queue.append((factory, fut))
        return fut

    def tick(self) -> int:
        """Refill the bucket if a window has elapsed, then start queued tasks.

        Returns the number of tasks started.
        """
        now = self._clock()
        if now - self._last_reset >= self.window:
            self._tokens = self.capacity
            self._last_reset = now

        started = 0
        while self._tokens > 0 and self._queue:
            factory, fut = self._queue.popleft()
            if fut.done():
                continue  # caller gave up before admission
            self._tokens -= 1
            started += 1
            task = asyncio.ensure_future(self._run(factory, fut))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            # A task cancelled before it ran never reaches _run's handler
            task.add_done_callback(lambda t, f=fut: f.cancel() if t.cancelled() else None)
        if self._queue and started and not self._tokens:
            logger.debug("Rate limit reached, %d requests waiting", len(self._queue))
        return started

    async def _run(self, factory: Callable[[], Awaitable[Any]], fut: asyncio.Future) -> None:
        try:
            result = await factory()
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as exc:
            if not fut.done():
                fut.set_exception(exc)
            return
        if not fut.done():
            fut.set_result(result)

    async def _tick_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.tick_interval)

    def start(self) -> None:
        """Start the background tick loop on the running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        """Cancel the tick loop and any started tasks. Queued tasks stay queued.

        Callers waiting on a cancelled task see CancelledError.
        """
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        in_flight = list(self._in_flight)
        for t in in_flight:
            t.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
