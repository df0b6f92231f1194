"""Job queue delivery and the worker pool."""

import asyncio
import uuid

import pytest

from vidstage.orchestrator import dispatch as dispatch_module
from vidstage.orchestrator.queue import JobQueue, QueueClosed
from vidstage.orchestrator.worker import JobWorker
from vidstage.schemas.jobs import GenerateMasterPlaylist, IngestVideo


def _job() -> GenerateMasterPlaylist:
    return GenerateMasterPlaylist(video_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_delayed_job_arrives_after_delay():
    queue = JobQueue()
    job = _job()
    await queue.enqueue(job, delay=0.05)
    assert queue.pending == 1

    received = await asyncio.wait_for(queue.get(), timeout=1)
    assert received.job_id == job.job_id
    queue.task_done()
    await asyncio.wait_for(queue.join(), timeout=1)
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_join_waits_for_delayed_jobs():
    queue = JobQueue()
    seen = []

    async def consumer():
        while True:
            job = await queue.get()
            seen.append(job.job_id)
            queue.task_done()

    task = asyncio.create_task(consumer())
    await queue.enqueue(_job(), delay=0.05)
    await queue.enqueue(_job())
    await asyncio.wait_for(queue.join(), timeout=1)
    task.cancel()

    assert len(seen) == 2


@pytest.mark.asyncio
async def test_closed_queue_refuses_jobs():
    queue = JobQueue()
    await queue.enqueue(_job(), delay=30)
    await queue.close()

    assert queue.pending == 0
    with pytest.raises(QueueClosed):
        await queue.enqueue(_job())


@pytest.mark.asyncio
async def test_worker_survives_handler_exception(ctx, monkeypatch):
    handled = []

    async def explode(ctx, job):
        raise RuntimeError("boom")

    async def record(ctx, job):
        handled.append(job.video_id)

    monkeypatch.setitem(dispatch_module.HANDLERS, "master_playlist", explode)
    monkeypatch.setitem(dispatch_module.HANDLERS, "ingest", record)

    video_id = uuid.uuid4()
    await ctx.queue.enqueue(GenerateMasterPlaylist(video_id=video_id))
    await ctx.queue.enqueue(IngestVideo(video_id=video_id, media_ref="uploads/x.mp4"))

    async with JobWorker(ctx, concurrency=2) as worker:
        await asyncio.wait_for(worker.run_until_idle(), timeout=5)
        assert worker.running

    assert handled == [video_id]
    assert not worker.running
