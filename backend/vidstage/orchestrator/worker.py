"""Worker pool draining the job queue.

``concurrency`` worker tasks pull jobs and dispatch them. An exception escaping
a handler is logged and the worker moves on; stage failures are already
recorded on the ledger by the handler itself.
"""

import asyncio
import logging
from typing import Optional

from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.dispatch import dispatch

logger = logging.getLogger(__name__)


class JobWorker:
    def __init__(self, ctx: PipelineContext, concurrency: Optional[int] = None) -> None:
        self.ctx = ctx
        self.concurrency = max(1, concurrency or ctx.settings.pipeline.worker_concurrency)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for n in range(self.concurrency):
            self._tasks.append(asyncio.create_task(self._worker(n), name=f"vidstage-worker-{n}"))
        logger.info(f"JobWorker started (concurrency={self.concurrency})")

    async def _worker(self, n: int) -> None:
        queue = self.ctx.queue
        while True:
            job = await queue.get()
            try:
                await dispatch(self.ctx, job)
            except Exception:
                logger.exception(f"Worker {n}: {job.kind} job {job.job_id} for video {job.video_id} failed")
            finally:
                queue.task_done()

    async def run_until_idle(self) -> None:
        """Process jobs until nothing is queued, delayed or running."""
        await self.start()
        await self.ctx.queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.debug("JobWorker stopped")

    async def __aenter__(self) -> "JobWorker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
