"""Search indexing stage.

Replaces the video's search documents with one document per transcript
segment and publishes the video unless it is held by moderation.
"""

import logging

from sqlalchemy import select

from vidstage.db.models import TranscriptSegment, VideoAsset
from vidstage.errors import NotFoundFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.ledger import claim_job, complete_job, fail_job, load_job
from vidstage.orchestrator.state import HELD_VIDEO_STATES, VideoStatus
from vidstage.schemas.collaborators import SearchDocument
from vidstage.schemas.jobs import IndexVideo

logger = logging.getLogger(__name__)


def access_lists(video: VideoAsset) -> tuple[list[str], list[str]]:
    """Project the video's ACL onto search documents.

    Published videos are unrestricted (both lists empty). Otherwise access is
    limited to the allowed groups and the allowed users, or the owner when no
    users are listed.
    """
    if video.status == VideoStatus.PUBLISHED:
        return [], []
    groups = list(video.allowed_group_ids or [])
    users = list(video.allowed_user_ids or [])
    if not users and video.owner_id:
        users = [video.owner_id]
    return groups, users


def build_documents(video: VideoAsset, segments) -> list[SearchDocument]:
    groups, users = access_lists(video)
    return [
        SearchDocument(
            id=str(seg.id),
            video_id=video.id,
            video_title=video.title,
            start_ms=seg.start_ms,
            end_ms=seg.end_ms,
            text=seg.text,
            language=seg.detected_language or video.language_hint,
            allowed_group_ids=groups,
            allowed_user_ids=users,
        )
        for seg in segments
    ]


async def index_video(ctx: PipelineContext, job: IndexVideo) -> None:
    index = ctx.collaborators.search_index

    async with ctx.session_factory() as session:
        row = await claim_job(
            session,
            job.processing_job_id,
            "Indexing transcript...",
            stale_after=ctx.settings.pipeline.stale_claim_seconds,
        )
        if row is None:
            logger.info(f"Video {job.video_id}: search indexing not claimable, skipping delivery")
            return

        try:
            video = await session.get(VideoAsset, job.video_id)
            if video is None:
                raise NotFoundFailure(f"Video {job.video_id} not found")

            segments = (await session.execute(
                select(TranscriptSegment)
                .where(TranscriptSegment.video_id == job.video_id)
                .order_by(TranscriptSegment.start_ms)
            )).scalars().all()

            await index.delete_by_video(job.video_id)
            documents = build_documents(video, segments)
            if documents:
                await index.index_batch(documents)

            # Reviewer or moderation may have changed the status meanwhile
            await session.refresh(video)
            complete_job(row, f"Indexed {len(documents)} segments")
            if video.status not in HELD_VIDEO_STATES:
                video.status = VideoStatus.PUBLISHED
            await session.commit()
            logger.info(f"Video {job.video_id}: indexed {len(documents)} segments, status={video.status}")

        except Exception as e:
            logger.exception(f"Video {job.video_id}: search indexing failed")
            await session.rollback()
            row = await load_job(session, job.processing_job_id)
            fail_job(row, str(e))
            video = await session.get(VideoAsset, job.video_id, populate_existing=True)
            if video is not None:
                video.status = VideoStatus.FAILED
            await session.commit()
