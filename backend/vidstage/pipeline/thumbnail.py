"""Thumbnail stage. Failure is recorded but never blocks the pipeline."""

import logging

from vidstage.db.models import VideoAsset
from vidstage.errors import NotFoundFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.gates import evaluate_moderation_gate
from vidstage.orchestrator.ledger import claim_job, complete_job, fail_job, load_job
from vidstage.schemas.jobs import GenerateThumbnail

logger = logging.getLogger(__name__)


def thumbnail_path(video_id) -> str:
    return f"thumbnails/{video_id}.png"


async def generate_thumbnail(ctx: PipelineContext, job: GenerateThumbnail) -> None:
    async with ctx.session_factory() as session:
        row = await claim_job(
            session,
            job.processing_job_id,
            "Extracting thumbnail...",
            stale_after=ctx.settings.pipeline.stale_claim_seconds,
        )
        if row is not None:
            try:
                png = await ctx.collaborators.thumbnails.extract_thumbnail(job.media_ref)
                path = await ctx.collaborators.store.put(thumbnail_path(job.video_id), png)

                video = await session.get(VideoAsset, job.video_id)
                if video is None:
                    raise NotFoundFailure(f"Video {job.video_id} not found")
                video.thumbnail_path = path
                complete_job(row, "Thumbnail generated")
                await session.commit()
                logger.info(f"Video {job.video_id}: thumbnail stored at {path}")

            except Exception as e:
                await session.rollback()
                row = await load_job(session, job.processing_job_id)
                fail_job(row, str(e))
                await session.commit()
                logger.warning(f"Video {job.video_id}: thumbnail extraction failed: {e}")

    await evaluate_moderation_gate(ctx, job.video_id)
