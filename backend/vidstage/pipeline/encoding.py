"""Variant encoding (fan-out) and master playlist generation (fan-in).

One encode job runs per configured quality profile. Each outcome re-runs the
master-playlist gate, which enqueues generation once every sibling variant is
terminal and at least one completed.
"""

import logging
import uuid

from sqlalchemy import select

from vidstage.db.models import VideoAsset, VideoVariant
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.gates import evaluate_master_playlist_gate
from vidstage.orchestrator.ledger import claim_variant, set_progress, utcnow
from vidstage.orchestrator.retry import retry_delay
from vidstage.orchestrator.state import VariantStatus
from vidstage.schemas.collaborators import PlaylistVariant
from vidstage.schemas.jobs import EncodeVariant, GenerateMasterPlaylist

logger = logging.getLogger(__name__)


async def encode_variant(ctx: PipelineContext, job: EncodeVariant) -> None:
    """Encode one quality rendition.

    A variant that is terminal, or held by a duplicate delivery whose claim is
    younger than ``pipeline.stale_claim_seconds``, is left alone; the gate
    still re-runs.
    """
    profile = job.profile

    async with ctx.session_factory() as session:
        variant = await claim_variant(
            session,
            job.variant_id,
            f"Starting {profile.name} encoding...",
            stale_after=ctx.settings.pipeline.stale_claim_seconds,
        )
        if variant is None:
            logger.info(f"Video {job.video_id}: variant {profile.name} not claimable, skipping delivery")
        else:
            try:
                set_progress(variant, 10, "Downloading source video...")
                await session.commit()
                set_progress(variant, 20, f"Encoding to {profile.name}...")
                await session.commit()

                result = await ctx.collaborators.encoder.encode_variant(
                    job.video_id, job.media_ref, profile
                )

                variant.status = VariantStatus.COMPLETED
                variant.playlist_path = result.playlist_path
                variant.segments_path = result.segments_path
                variant.size_bytes = result.size_bytes
                variant.error_message = None
                variant.completed_at = utcnow()
                set_progress(variant, 100, "Encoding complete")
                await session.commit()
                logger.info(f"Video {job.video_id}: {profile.name} encoded ({result.size_bytes} bytes)")

            except Exception as e:
                await session.rollback()
                variant = await session.get(VideoVariant, job.variant_id, populate_existing=True)
                if variant is not None:
                    variant.status = VariantStatus.FAILED
                    variant.error_message = str(e)
                    variant.completed_at = utcnow()
                    set_progress(variant, 0, None)
                    await session.commit()
                logger.warning(f"Video {job.video_id}: {profile.name} encoding failed: {e}")

    await evaluate_master_playlist_gate(ctx, job.video_id)


async def completed_variants(session, video_id: uuid.UUID) -> list[PlaylistVariant]:
    """Completed variants ordered by descending video bitrate."""
    result = await session.execute(
        select(VideoVariant)
        .where(
            VideoVariant.video_id == video_id,
            VideoVariant.status == VariantStatus.COMPLETED,
        )
        .order_by(VideoVariant.video_bitrate_kbps.desc())
    )
    return [
        PlaylistVariant(
            quality=v.quality,
            width=v.width,
            height=v.height,
            video_bitrate_kbps=v.video_bitrate_kbps,
            audio_bitrate_kbps=v.audio_bitrate_kbps,
            playlist_path=v.playlist_path or "",
        )
        for v in result.scalars().all()
    ]


async def generate_master_playlist(ctx: PipelineContext, job: GenerateMasterPlaylist) -> None:
    """Write the master manifest from the currently completed variants.

    Safe to run more than once: the encoder overwrites the manifest. A failed
    write is re-enqueued with backoff until
    ``encoding.master_playlist_max_attempts`` is reached; the master-playlist
    claim is held across retries and released once they are exhausted.
    """
    requeue_after = None

    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, job.video_id)
        if video is None:
            logger.info(f"Video {job.video_id} no longer exists, skipping master playlist")
            return

        variants = await completed_variants(session, job.video_id)
        if not variants:
            logger.warning(f"Video {job.video_id}: no completed variants for master playlist")
            return

        try:
            path = await ctx.collaborators.encoder.generate_master_playlist(job.video_id, variants)
        except Exception as e:
            if job.attempt < ctx.settings.encoding.master_playlist_max_attempts:
                requeue_after = retry_delay(job.attempt, ctx.settings.pipeline)
                logger.warning(
                    f"Video {job.video_id}: master playlist attempt {job.attempt} failed, "
                    f"retrying in {requeue_after:.1f}s: {e}"
                )
            else:
                video.master_playlist_claimed_at = None
                await session.commit()
                logger.error(
                    f"Video {job.video_id}: master playlist failed after {job.attempt} attempts: {e}"
                )
        else:
            video.master_playlist_path = path
            await session.commit()
            logger.info(
                f"Video {job.video_id}: master playlist at {path} "
                f"({', '.join(v.quality for v in variants)})"
            )

    if requeue_after is not None:
        await ctx.queue.enqueue(
            job.model_copy(update={"job_id": uuid.uuid4(), "attempt": job.attempt + 1}),
            delay=requeue_after,
        )
