"""Rate-limited request dispatcher serializing outbound API calls."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple


logger = logging.getLogger(__name__)


Task = Callable[[], Awaitable[Any]]


def _settle(future: asyncio.Future, job: asyncio.Future) -> None:
    """Hand a finished job's outcome to the caller waiting on ``future``."""
    if future.done():
        return
    if job.cancelled():
        future.cancel()
    elif job.exception() is not None:
        future.set_exception(job.exception())
    else:
        future.set_result(job.result())


class RequestDispatcher:
    """Runs submitted tasks one at a time, in arrival order.

    A single worker drains a FIFO queue. After each task settles the worker
    sleeps ``gap_seconds`` before starting the next one, so consecutive starts
    are never closer than the gap. A failing task only fails its own caller.
    """

    def __init__(self, gap_seconds: float = 0.6):
        """Initialize dispatcher.

        Args:
            gap_seconds: Minimum delay between the start of consecutive tasks
        """
        self._gap = max(0.0, gap_seconds)
        self._queue: Optional["asyncio.Queue[Tuple[Task, asyncio.Future]]"] = None
        self._worker: Optional[asyncio.Task] = None
        self._dispatched = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def dispatched(self) -> int:
        """Number of tasks started so far."""
        return self._dispatched

    async def submit(self, task: Task) -> Any:
        """Queue a task and wait for its own result.

        Args:
            task: Zero-argument coroutine function performing one request

        Returns:
            Whatever the task returns; its exception is re-raised here
        """
        if self._queue is None:
            self._queue = asyncio.Queue()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((task, future))
        if not self.running:
            self._worker = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while True:
            task, future = await self._queue.get()
            self._dispatched += 1
            job = asyncio.ensure_future(task())
            try:
                await asyncio.wait({job})
            except asyncio.CancelledError:
                job.cancel()
                future.cancel()
                raise
            finally:
                self._queue.task_done()
            _settle(future, job)
            await asyncio.sleep(self._gap)

    async def close(self) -> None:
        """Stop the worker once queued tasks have settled."""
        if self._worker is None:
            return
        if self._queue is not None:
            await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info(f"Dispatcher closed after {self._dispatched} requests")
