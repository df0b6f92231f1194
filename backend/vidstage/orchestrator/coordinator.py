"""Pipeline coordinator and caller operations.

Creates the stage and variant ledgers at intake, performs the initial fan-out
(transcription, thumbnail and one encode per quality profile), and exposes the
operations callers use to inspect and steer a video:

- register_video / enqueue_ingest
- get_processing_status
- reprocess / regenerate_ai
- approve_video / reject_video

ContentModeration, SearchIndexing and AIHighlights are never enqueued here;
the gates arm them.
"""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import delete, func, select

from vidstage.db.models import (
    ModerationResult,
    ProcessingJob,
    TranscriptSegment,
    VideoAsset,
    VideoHighlight,
    VideoSummary,
    VideoVariant,
)
from vidstage.errors import InvalidStateError, NotFoundFailure, ValidationFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.gates import arm_search_indexing
from vidstage.orchestrator.ledger import (
    get_stage_job,
    jobs_by_stage,
    rearm_job,
    skip_job,
    utcnow,
    variants_for,
)
from vidstage.orchestrator.state import (
    REVIEWABLE_VIDEO_STATES,
    STAGE_ORDER,
    JobStatus,
    ReviewerDecision,
    Stage,
    VariantStatus,
    VideoStatus,
)
from vidstage.schemas.jobs import (
    EncodeVariant,
    ExtractHighlights,
    GenerateThumbnail,
    IngestVideo,
    TranscribeVideo,
)
from vidstage.schemas.status import ProcessingStatus, StageStatus, VariantProgress

logger = logging.getLogger(__name__)

_DONE_STATES = {JobStatus.COMPLETED, JobStatus.SKIPPED}


async def register_video(
    ctx: PipelineContext,
    media_ref: str,
    *,
    title: str = "",
    description: Optional[str] = None,
    tags: Optional[list[str]] = None,
    language_hint: Optional[str] = None,
    owner_id: str = "",
    allowed_group_ids: Optional[list[str]] = None,
    allowed_user_ids: Optional[list[str]] = None,
) -> VideoAsset:
    """Create a video record in Uploading state for media already in the store."""
    async with ctx.session_factory() as session:
        video = VideoAsset(
            media_ref=media_ref,
            title=title,
            description=description,
            tags=list(tags or []),
            language_hint=language_hint,
            owner_id=owner_id,
            allowed_group_ids=list(allowed_group_ids or []),
            allowed_user_ids=list(allowed_user_ids or []),
            status=VideoStatus.UPLOADING,
        )
        session.add(video)
        await session.commit()
        logger.info(f"Registered video {video.id} ({media_ref})")
        return video


async def enqueue_ingest(
    ctx: PipelineContext,
    video_id: uuid.UUID,
    media_ref: str,
    language_hint: Optional[str] = None,
) -> None:
    await ctx.queue.enqueue(
        IngestVideo(video_id=video_id, media_ref=media_ref, language_hint=language_hint)
    )


async def run_ingest(ctx: PipelineContext, job: IngestVideo) -> None:
    """Create missing ledger rows and the moderation record, then fan out the
    independent stages.

    Idempotent: rows that already exist are kept, and only Pending rows are
    (re-)enqueued.

    Raises:
        NotFoundFailure: If the video does not exist
    """
    profiles = ctx.settings.encoding.quality_profiles

    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, job.video_id)
        if video is None:
            raise NotFoundFailure(f"Video {job.video_id} not found, ingest aborted")

        existing_jobs = await jobs_by_stage(session, job.video_id)
        existing_variants = {v.quality: v for v in await variants_for(session, job.video_id)}

        if not existing_jobs or video.status == VideoStatus.UPLOADING:
            video.status = VideoStatus.QUEUED
        video.media_ref = job.media_ref
        if job.language_hint:
            video.language_hint = job.language_hint

        for stage in STAGE_ORDER:
            if stage in existing_jobs:
                continue
            row = ProcessingJob(video_id=job.video_id, stage=stage, status=JobStatus.PENDING)
            if stage == Stage.MALWARE_SCAN:
                skip_job(row, "No malware scanner configured")
            session.add(row)
            existing_jobs[stage] = row

        for profile in profiles:
            if profile.name in existing_variants:
                continue
            variant = VideoVariant(
                video_id=job.video_id,
                quality=profile.name,
                width=profile.width,
                height=profile.height,
                video_bitrate_kbps=profile.video_bitrate_kbps,
                audio_bitrate_kbps=profile.audio_bitrate_kbps,
                status=VariantStatus.PENDING,
                progress=0,
            )
            session.add(variant)
            existing_variants[profile.name] = variant

        moderation_result = await session.scalar(
            select(ModerationResult.id).where(ModerationResult.video_id == job.video_id)
        )
        if moderation_result is None:
            session.add(ModerationResult(video_id=job.video_id))

        await session.commit()

        transcription = existing_jobs[Stage.TRANSCRIPTION]
        thumbnail = existing_jobs[Stage.THUMBNAIL_GENERATION]
        fan_out = []
        if transcription.status == JobStatus.PENDING:
            fan_out.append(TranscribeVideo(
                video_id=job.video_id,
                processing_job_id=transcription.id,
                media_ref=job.media_ref,
                language_hint=video.language_hint,
            ))
        if thumbnail.status == JobStatus.PENDING:
            fan_out.append(GenerateThumbnail(
                video_id=job.video_id,
                processing_job_id=thumbnail.id,
                media_ref=job.media_ref,
            ))
        for profile in profiles:
            variant = existing_variants[profile.name]
            if variant.status == VariantStatus.PENDING:
                fan_out.append(EncodeVariant(
                    video_id=job.video_id,
                    variant_id=variant.id,
                    media_ref=job.media_ref,
                    profile=profile,
                ))

    logger.info(f"Video {job.video_id}: ingest fan-out of {len(fan_out)} jobs")
    for message in fan_out:
        await ctx.queue.enqueue(message)


def overall_status(statuses: Sequence[str]) -> JobStatus:
    """Roll stage statuses up into one.

    Examples:
        >>> overall_status(["completed", "skipped"])
        <JobStatus.COMPLETED: 'completed'>
        >>> overall_status(["completed", "failed", "in_progress"])
        <JobStatus.FAILED: 'failed'>
    """
    if any(s == JobStatus.FAILED for s in statuses):
        return JobStatus.FAILED
    if statuses and all(s in _DONE_STATES for s in statuses):
        return JobStatus.COMPLETED
    if any(s == JobStatus.IN_PROGRESS for s in statuses):
        return JobStatus.IN_PROGRESS
    return JobStatus.PENDING


def progress_percentage(statuses: Sequence[str]) -> int:
    if not statuses:
        return 0
    done = sum(1 for s in statuses if s in _DONE_STATES)
    return int(done / len(statuses) * 100)


async def get_processing_status(ctx: PipelineContext, video_id: uuid.UUID) -> ProcessingStatus:
    """Per-stage states, variant progress and the aggregate for a video.

    Raises:
        NotFoundFailure: If the video does not exist
    """
    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, video_id)
        if video is None:
            raise NotFoundFailure(f"Video {video_id} not found")

        jobs = await jobs_by_stage(session, video_id)
        ordered = [jobs[s] for s in STAGE_ORDER if s in jobs]
        variants = sorted(
            await variants_for(session, video_id),
            key=lambda v: v.video_bitrate_kbps,
            reverse=True,
        )

    statuses = [j.status for j in ordered]
    return ProcessingStatus(
        video_id=video_id,
        video_status=video.status,
        overall_status=overall_status(statuses),
        progress_percentage=progress_percentage(statuses),
        master_playlist_path=video.master_playlist_path,
        jobs=[StageStatus.model_validate(j) for j in ordered],
        variants=[VariantProgress.model_validate(v) for v in variants],
    )


async def list_videos(ctx: PipelineContext, status: Optional[str] = None) -> list[VideoAsset]:
    async with ctx.session_factory() as session:
        query = select(VideoAsset).order_by(VideoAsset.created_at.desc())
        if status:
            query = query.where(VideoAsset.status == status)
        return list((await session.execute(query)).scalars().all())


async def reprocess(ctx: PipelineContext, video_id: uuid.UUID) -> None:
    """Clear all stage, variant and derived state and ingest again.

    Raises:
        NotFoundFailure: If the video does not exist
    """
    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, video_id)
        if video is None:
            raise NotFoundFailure(f"Video {video_id} not found")

        for model in (
            ProcessingJob,
            VideoVariant,
            TranscriptSegment,
            VideoHighlight,
            VideoSummary,
            ModerationResult,
        ):
            await session.execute(delete(model).where(model.video_id == video_id))

        video.status = VideoStatus.QUEUED
        video.thumbnail_path = None
        video.master_playlist_path = None
        video.master_playlist_claimed_at = None
        await session.commit()
        media_ref, language_hint = video.media_ref, video.language_hint

    await ctx.collaborators.search_index.delete_by_video(video_id)
    await ctx.collaborators.store.delete(f"hls/{video_id}")

    logger.info(f"Video {video_id}: reprocessing from scratch")
    await enqueue_ingest(ctx, video_id, media_ref, language_hint)


async def regenerate_ai(ctx: PipelineContext, video_id: uuid.UUID) -> None:
    """Re-arm only the AIHighlights stage.

    Raises:
        NotFoundFailure: If the video does not exist
        ValidationFailure: If the video has no transcript
    """
    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, video_id)
        if video is None:
            raise NotFoundFailure(f"Video {video_id} not found")

        segment_count = await session.scalar(
            select(func.count(TranscriptSegment.id)).where(TranscriptSegment.video_id == video_id)
        )
        if not segment_count:
            raise ValidationFailure(f"Video {video_id} has no transcript")

        job = await get_stage_job(session, video_id, Stage.AI_HIGHLIGHTS)
        if job is None:
            job = ProcessingJob(video_id=video_id, stage=Stage.AI_HIGHLIGHTS)
            session.add(job)
        rearm_job(job)
        await session.commit()
        job_id = job.id

    logger.info(f"Video {video_id}: regenerating AI highlights")
    await ctx.queue.enqueue(ExtractHighlights(video_id=video_id, processing_job_id=job_id))


async def _record_decision(
    session,
    video_id: uuid.UUID,
    decision: ReviewerDecision,
    reviewer_id: str,
    notes: Optional[str],
) -> VideoAsset:
    video = await session.get(VideoAsset, video_id)
    if video is None:
        raise NotFoundFailure(f"Video {video_id} not found")
    if video.status not in REVIEWABLE_VIDEO_STATES:
        raise InvalidStateError(
            f"Video {video_id} is {video.status}; only quarantined or moderating videos can be reviewed"
        )

    result = (await session.execute(
        select(ModerationResult).where(ModerationResult.video_id == video_id)
    )).scalar_one_or_none()
    if result is None:
        raise NotFoundFailure(f"Video {video_id} has no moderation record")
    result.reviewer_decision = decision
    result.reviewer_id = reviewer_id
    result.reviewer_notes = notes
    result.reviewed_at = utcnow()
    return video


async def approve_video(
    ctx: PipelineContext,
    video_id: uuid.UUID,
    reviewer_id: str,
    notes: Optional[str] = None,
) -> None:
    """Approve a held video and resume indexing.

    Raises:
        NotFoundFailure: If the video does not exist
        InvalidStateError: If the video is not quarantined or moderating
    """
    async with ctx.session_factory() as session:
        video = await _record_decision(session, video_id, ReviewerDecision.APPROVED, reviewer_id, notes)
        video.status = VideoStatus.INDEXING
        await session.commit()

    logger.info(f"Video {video_id}: approved by {reviewer_id}")
    await arm_search_indexing(ctx, video_id)


async def reject_video(
    ctx: PipelineContext,
    video_id: uuid.UUID,
    reviewer_id: str,
    notes: str,
) -> None:
    """Reject a held video.

    Raises:
        ValidationFailure: If notes are blank
        NotFoundFailure: If the video does not exist
        InvalidStateError: If the video is not quarantined or moderating
    """
    if not notes or not notes.strip():
        raise ValidationFailure("Rejection notes are required")

    async with ctx.session_factory() as session:
        video = await _record_decision(session, video_id, ReviewerDecision.REJECTED, reviewer_id, notes)
        video.status = VideoStatus.REJECTED
        await session.commit()

    logger.info(f"Video {video_id}: rejected by {reviewer_id}")
