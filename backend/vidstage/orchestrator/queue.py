"""In-process job transport.

An ``asyncio.Queue`` of validated job payloads with support for delayed
delivery (retry backoff). Delivery is at-least-once from the handlers' point
of view: gates may enqueue the same job more than once and handlers tolerate
it by claiming their ledger row first.
"""

import asyncio
import logging

from vidstage.schemas.jobs import JobMessage

logger = logging.getLogger(__name__)


class QueueClosed(RuntimeError):
    """Raised when enqueueing onto a closed queue."""


class JobQueue:
    def __init__(self, maxsize: int = 0) -> None:
        self._q: asyncio.Queue[JobMessage] = asyncio.Queue(maxsize)
        self._delayed: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        """Jobs waiting for a worker, including delayed ones."""
        return self._q.qsize() + len(self._delayed)

    async def enqueue(self, job: JobMessage, delay: float = 0.0) -> None:
        """Put a job on the queue, optionally after ``delay`` seconds."""
        if self._closed:
            raise QueueClosed(f"Cannot enqueue {job.kind} job: queue is closed")

        if delay > 0:
            logger.debug(f"Scheduling {job.kind} job for video {job.video_id} in {delay:.1f}s")
            task = asyncio.create_task(self._enqueue_later(job, delay))
            self._delayed.add(task)
            task.add_done_callback(self._delayed.discard)
            return

        logger.debug(f"Enqueued {job.kind} job for video {job.video_id}")
        await self._q.put(job)

    async def _enqueue_later(self, job: JobMessage, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._q.put(job)

    async def get(self) -> JobMessage:
        return await self._q.get()

    def task_done(self) -> None:
        self._q.task_done()

    async def join(self) -> None:
        """Wait until no job is queued, delayed, or being processed."""
        while True:
            if self._delayed:
                await asyncio.gather(*list(self._delayed), return_exceptions=True)
            await self._q.join()
            if not self._delayed and self._q.empty():
                return

    async def close(self) -> None:
        """Refuse new jobs and drop any delayed deliveries."""
        self._closed = True
        for task in list(self._delayed):
            task.cancel()
        if self._delayed:
            await asyncio.gather(*list(self._delayed), return_exceptions=True)
