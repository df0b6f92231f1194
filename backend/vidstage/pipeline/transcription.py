"""Transcription stage.

Claims the Transcription row, calls the transcription engine and replaces the
video's transcript segments. Failures are retried by re-enqueueing the job
with exponential backoff until ``pipeline.transcription_max_attempts`` is
reached, after which the stage and the video are marked Failed.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from vidstage.config import PipelineConfig
from vidstage.db.models import TranscriptSegment, VideoAsset
from vidstage.errors import NotFoundFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.gates import evaluate_highlights_gate, evaluate_moderation_gate
from vidstage.orchestrator.ledger import (
    claim_job,
    complete_job,
    fail_job,
    load_job,
    requeue_job,
    set_progress,
)
from vidstage.orchestrator.retry import retry_delay, should_retry
from vidstage.orchestrator.state import VideoStatus
from vidstage.schemas.jobs import TranscribeVideo

logger = logging.getLogger(__name__)


async def transcribe_video(ctx: PipelineContext, job: TranscribeVideo) -> None:
    """Run one transcription attempt for a video.

    Args:
        ctx: Pipeline handles
        job: Transcription payload referencing the stage row
    """
    cfg = ctx.settings.pipeline
    succeeded = False
    requeue_after = None

    async with ctx.session_factory() as session:
        row = await claim_job(
            session,
            job.processing_job_id,
            "Starting transcription...",
            stale_after=cfg.stale_claim_seconds,
        )
        if row is None:
            logger.info(f"Video {job.video_id}: transcription not claimable, skipping delivery")
        else:
            try:
                video = await session.get(VideoAsset, job.video_id)
                if video is None:
                    raise NotFoundFailure(f"Video {job.video_id} not found")
                if video.status == VideoStatus.QUEUED:
                    video.status = VideoStatus.INDEXING
                set_progress(row, 10, "Downloading media...")
                await session.commit()

                result = await ctx.collaborators.transcription.transcribe(
                    job.media_ref, job.language_hint
                )

                set_progress(row, 80, "Processing segments...")
                await session.execute(
                    delete(TranscriptSegment).where(TranscriptSegment.video_id == job.video_id)
                )
                for seg in sorted(result.segments, key=lambda s: s.start_ms):
                    session.add(TranscriptSegment(
                        video_id=job.video_id,
                        start_ms=seg.start_ms,
                        end_ms=seg.end_ms,
                        text=seg.text,
                        detected_language=seg.detected_language or result.detected_language,
                        speaker=seg.speaker,
                        confidence=seg.confidence,
                    ))
                if video.duration_ms is None and result.duration_ms:
                    video.duration_ms = result.duration_ms

                complete_job(row, f"Transcribed {len(result.segments)} segments")
                await session.commit()
                succeeded = True
                logger.info(
                    f"Video {job.video_id}: transcription complete "
                    f"({len(result.segments)} segments, language={result.detected_language})"
                )

            except Exception as e:
                await session.rollback()
                requeue_after = await _record_failure(session, job, str(e), cfg)

    if requeue_after is not None:
        await ctx.queue.enqueue(job.model_copy(update={"job_id": uuid.uuid4()}), delay=requeue_after)

    await evaluate_moderation_gate(ctx, job.video_id)
    if succeeded:
        await evaluate_highlights_gate(ctx, job.video_id)


async def _record_failure(
    session: AsyncSession, job: TranscribeVideo, error: str, cfg: PipelineConfig
) -> Optional[float]:
    """Record a failed attempt. Returns the requeue delay, or None at the cap."""
    row = await load_job(session, job.processing_job_id)

    if should_retry(row.attempts, cfg):
        delay = retry_delay(row.attempts, cfg)
        requeue_job(row, error, f"Retrying in {delay:.1f}s (attempt {row.attempts} failed)")
        await session.commit()
        logger.warning(
            f"Video {job.video_id}: transcription attempt {row.attempts} failed, "
            f"retrying in {delay:.1f}s: {error}"
        )
        return delay

    fail_job(row, error)
    video = await session.get(VideoAsset, job.video_id, populate_existing=True)
    if video is not None:
        video.status = VideoStatus.FAILED
    await session.commit()
    logger.error(
        f"Video {job.video_id}: transcription failed after {row.attempts} attempts: {error}"
    )
    return None
