"""
Side-Effect Queue
=================
Bounded work queue for the writes that follow a swap (raw insert, wallet
tracking, enrichment enqueue). `submit` never blocks the stream reader: when
the queue is full the new job is dropped and counted.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from swaptrack.core import config
from swaptrack.core.errors import PersistenceConflict
from swaptrack.core.logger import get_logger, log_event

logger = get_logger("workers.side_effects")

Job = Tuple[str, Callable[[], Awaitable]]


class SideEffectQueue:
    def __init__(self, maxsize: int = config.SIDE_EFFECT_QUEUE_SIZE,
                 workers: int = config.SIDE_EFFECT_WORKERS):
        self.maxsize = maxsize
        self.workers = workers
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self.submitted = 0
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def queue(self) -> asyncio.Queue:
        # Created lazily so it binds to the running loop
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        return self._queue

    def submit(self, name: str, job: Callable[[], Awaitable]) -> bool:
        try:
            self.queue.put_nowait((name, job))
        except asyncio.QueueFull:
            self.dropped += 1
            log_event(logger, "side_effect_dropped", {"job": name, "dropped": self.dropped}, level=logging.WARNING)
            return False
        self.submitted += 1
        return True

    def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i)) for i in range(self.workers)
        ]
        logger.info(f"Side-effect workers started: {self.workers}")

    async def stop(self, drain: bool = True):
        if drain and self._tasks:
            await self.queue.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Side-effect workers stopped")

    async def join(self):
        await self.queue.join()

    def stats(self) -> Dict[str, int]:
        return {
            "pending": self.queue.qsize(),
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "dropped": self.dropped,
            "workers": len(self._tasks),
        }

    async def _worker(self, worker_id: int):
        while True:
            name, job = await self.queue.get()
            try:
                await job()
                self.completed += 1
            except PersistenceConflict:
                # Duplicate delivery of an already stored row
                self.completed += 1
                logger.debug(f"Side effect {name} hit an existing row")
            except Exception as e:
                self.failed += 1
                logger.error(f"Side effect {name} failed on worker {worker_id}: {e}")
            finally:
                self.queue.task_done()
