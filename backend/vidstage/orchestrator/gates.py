"""Gates: idempotent prerequisite checks that arm dependent stages.

Each gate re-reads the ledger, decides, and either does nothing or enqueues
the dependent job. Invoking a gate redundantly is always safe: a still-Pending
prerequisite is a no-op, and duplicate enqueues are absorbed by the handlers'
compare-and-swap claims.
"""

import logging
import uuid

from sqlalchemy import func, select, update

from vidstage.db.models import TranscriptSegment, VideoAsset
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.ledger import (
    get_stage_job,
    jobs_by_stage,
    rearm_job,
    skip_job,
    utcnow,
    variants_for,
)
from vidstage.orchestrator.state import (
    TERMINAL_VARIANT_STATES,
    JobStatus,
    Stage,
    VariantStatus,
    VideoStatus,
    is_terminal,
)
from vidstage.schemas.jobs import (
    ExtractHighlights,
    GenerateMasterPlaylist,
    IndexVideo,
    ModerateContent,
)

logger = logging.getLogger(__name__)

_TRANSCRIPT_READY = {JobStatus.COMPLETED, JobStatus.SKIPPED}


async def evaluate_moderation_gate(ctx: PipelineContext, video_id: uuid.UUID) -> bool:
    """Enqueue ContentModeration once transcription and thumbnail are terminal.

    Transcription must have succeeded (Completed or Skipped); a failed
    thumbnail does not block. Never fires for a Failed video.

    Returns:
        True if a moderation job was enqueued
    """
    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, video_id)
        if video is None or video.status == VideoStatus.FAILED:
            return False

        jobs = await jobs_by_stage(session, video_id)
        transcription = jobs.get(Stage.TRANSCRIPTION)
        thumbnail = jobs.get(Stage.THUMBNAIL_GENERATION)
        moderation = jobs.get(Stage.CONTENT_MODERATION)

        if transcription is None or thumbnail is None or moderation is None:
            return False
        if transcription.status not in _TRANSCRIPT_READY:
            return False
        if not is_terminal(thumbnail.status):
            return False
        if moderation.status != JobStatus.PENDING:
            return False

        moderation_id = moderation.id

    logger.info(f"Video {video_id}: prerequisites met, enqueuing content moderation")
    await ctx.queue.enqueue(ModerateContent(video_id=video_id, processing_job_id=moderation_id))
    return True


async def evaluate_master_playlist_gate(ctx: PipelineContext, video_id: uuid.UUID) -> bool:
    """Enqueue master playlist generation once every variant is terminal.

    Requires at least one Completed variant. With
    ``encoding.claim_master_playlist`` the gate additionally claims the video
    row so generation is enqueued at most once per ingest.
    """
    async with ctx.session_factory() as session:
        variants = await variants_for(session, video_id)
        if not variants:
            return False
        if any(v.status not in TERMINAL_VARIANT_STATES for v in variants):
            return False
        if not any(v.status == VariantStatus.COMPLETED for v in variants):
            logger.warning(f"Video {video_id}: all {len(variants)} variants failed, no master playlist")
            return False

        if ctx.settings.encoding.claim_master_playlist:
            result = await session.execute(
                update(VideoAsset)
                .where(
                    VideoAsset.id == video_id,
                    VideoAsset.master_playlist_claimed_at.is_(None),
                )
                .values(master_playlist_claimed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount != 1:
                logger.debug(f"Video {video_id}: master playlist already claimed")
                return False

    await ctx.queue.enqueue(GenerateMasterPlaylist(video_id=video_id))
    return True


async def evaluate_highlights_gate(ctx: PipelineContext, video_id: uuid.UUID) -> bool:
    """Arm AIHighlights after transcription, or skip it for an empty transcript."""
    async with ctx.session_factory() as session:
        job = await get_stage_job(session, video_id, Stage.AI_HIGHLIGHTS)
        if job is None or job.status != JobStatus.PENDING:
            return False

        segment_count = await session.scalar(
            select(func.count(TranscriptSegment.id)).where(TranscriptSegment.video_id == video_id)
        )
        if not segment_count:
            skip_job(job, "No transcript segments")
            await session.commit()
            logger.info(f"Video {video_id}: empty transcript, AI highlights skipped")
            return False

        job_id = job.id

    await ctx.queue.enqueue(ExtractHighlights(video_id=video_id, processing_job_id=job_id))
    return True


async def arm_search_indexing(ctx: PipelineContext, video_id: uuid.UUID) -> bool:
    """Reset SearchIndexing to Pending and enqueue it.

    No-op when the stage already Completed or is currently being worked on.
    """
    async with ctx.session_factory() as session:
        job = await get_stage_job(session, video_id, Stage.SEARCH_INDEXING)
        if job is None or job.status in (JobStatus.COMPLETED, JobStatus.IN_PROGRESS):
            return False
        rearm_job(job)
        await session.commit()
        job_id = job.id

    await ctx.queue.enqueue(IndexVideo(video_id=video_id, processing_job_id=job_id))
    return True
