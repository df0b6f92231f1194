"""Dispatch table from job kind to handler coroutine."""

import logging
from typing import Awaitable, Callable

from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.coordinator import run_ingest
from vidstage.pipeline.encoding import encode_variant, generate_master_playlist
from vidstage.pipeline.highlights import extract_highlights
from vidstage.pipeline.indexing import index_video
from vidstage.pipeline.moderation import moderate_content
from vidstage.pipeline.thumbnail import generate_thumbnail
from vidstage.pipeline.transcription import transcribe_video
from vidstage.schemas.jobs import JobMessage

logger = logging.getLogger(__name__)

Handler = Callable[[PipelineContext, JobMessage], Awaitable[None]]

HANDLERS: dict[str, Handler] = {
    "ingest": run_ingest,
    "transcribe": transcribe_video,
    "thumbnail": generate_thumbnail,
    "moderate": moderate_content,
    "encode_variant": encode_variant,
    "master_playlist": generate_master_playlist,
    "index": index_video,
    "highlights": extract_highlights,
}


async def dispatch(ctx: PipelineContext, job: JobMessage) -> None:
    """Run the handler registered for job.kind."""
    handler = HANDLERS[job.kind]
    logger.debug(f"Dispatching {job.kind} job {job.job_id} for video {job.video_id}")
    await handler(ctx, job)
