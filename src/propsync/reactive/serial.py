"""Single-consumer job queue giving each query object one execution context."""

import asyncio
from typing import Awaitable, Callable, Optional

from ..core.errors import classify_error
from ..utils.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]


class SerialExecutor:
    """
    Run submitted coroutine jobs one at a time, in submission order.

    The consumer task is started lazily on the first ``submit`` so the
    executor can be constructed outside a running event loop. A failing
    job is logged with its classified error type and the loop moves on to
    the next job.

    Attributes:
        name: Label used in log messages
        processed: Number of jobs that finished (successfully or not)
        failed: Number of jobs that raised
    """

    def __init__(self, name: str = "serial"):
        self.name = name
        self.processed = 0
        self.failed = 0
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, job: Job) -> None:
        """Queue a job. Jobs submitted after ``stop`` are dropped."""
        if self._stopped:
            logger.debug(f"Executor {self.name} stopped, dropping job")
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._queue.put_nowait(job)
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        """Executor main loop."""
        assert self._queue is not None
        while not self._stopped:
            try:
                job = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                await job()
            except asyncio.CancelledError:
                self._queue.task_done()
                break
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Executor {self.name} job failed ({classify_error(e).value}): {e}",
                    exc_info=True,
                )
            self.processed += 1
            self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every job submitted so far has finished."""
        if self._queue is None or not self.running:
            return
        await self._queue.join()

    async def stop(self) -> None:
        """Stop the consumer; queued jobs that have not started are discarded."""
        self._stopped = True
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
