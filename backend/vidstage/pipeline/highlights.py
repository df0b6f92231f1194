"""AI highlights and summary stage.

Both collaborator calls are best-effort: a failure in one is logged and does
not prevent the other or fail the stage. Results overwrite earlier output so
regeneration is idempotent.
"""

import logging
from collections import Counter
from typing import Optional, Sequence

from sqlalchemy import delete, select

from vidstage.db.models import TranscriptSegment, VideoAsset, VideoHighlight, VideoSummary
from vidstage.errors import NotFoundFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.ledger import claim_job, complete_job, fail_job, load_job
from vidstage.schemas.collaborators import HighlightsResult, SummaryResult
from vidstage.schemas.jobs import ExtractHighlights

logger = logging.getLogger(__name__)

MAX_KEYWORD_TAGS = 10


def format_timestamp(ms: int) -> str:
    """Format milliseconds as m:ss, or h:mm:ss past one hour.

    Examples:
        >>> format_timestamp(65_000)
        '1:05'
        >>> format_timestamp(3_725_000)
        '1:02:05'
    """
    total = ms // 1000
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def build_transcript_text(segments: Sequence[TranscriptSegment]) -> str:
    return "\n".join(f"[{format_timestamp(s.start_ms)}] {s.text}" for s in segments)


def dominant_language(segments: Sequence[TranscriptSegment], fallback: Optional[str]) -> Optional[str]:
    """Most common detected segment language, else fallback."""
    counts = Counter(s.detected_language for s in segments if s.detected_language)
    if not counts:
        return fallback
    return counts.most_common(1)[0][0]


async def extract_highlights(ctx: PipelineContext, job: ExtractHighlights) -> None:
    extractor = ctx.collaborators.highlights

    async with ctx.session_factory() as session:
        row = await claim_job(
            session,
            job.processing_job_id,
            "Generating highlights...",
            stale_after=ctx.settings.pipeline.stale_claim_seconds,
        )
        if row is None:
            logger.info(f"Video {job.video_id}: AI highlights not claimable, skipping delivery")
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

            if not segments:
                complete_job(row, "No transcript to analyze")
                await session.commit()
                return

            text = build_transcript_text(segments)
            language = dominant_language(segments, video.language_hint)

            highlights: Optional[HighlightsResult] = None
            try:
                highlights = await extractor.extract_highlights(text, language)
            except Exception as e:
                logger.warning(f"Video {job.video_id}: highlight extraction failed: {e}")

            summary: Optional[SummaryResult] = None
            try:
                summary = await extractor.summarize(text, video.title)
            except Exception as e:
                logger.warning(f"Video {job.video_id}: summarization failed: {e}")

            if highlights is not None:
                await _replace_highlights(session, video, highlights, language)
            if summary is not None and (summary.summary or summary.tldr or summary.keywords):
                await _replace_summary(session, video, summary, highlights, language)

            count = len(highlights.highlights) if highlights else 0
            complete_job(row, f"Extracted {count} highlights")
            await session.commit()
            logger.info(f"Video {job.video_id}: {count} highlights extracted (language={language})")

        except Exception as e:
            logger.exception(f"Video {job.video_id}: AI highlights failed")
            await session.rollback()
            row = await load_job(session, job.processing_job_id)
            fail_job(row, str(e))
            await session.commit()


async def _replace_highlights(session, video: VideoAsset, result: HighlightsResult, language) -> None:
    await session.execute(delete(VideoHighlight).where(VideoHighlight.video_id == video.id))
    for h in result.highlights:
        session.add(VideoHighlight(
            video_id=video.id,
            text=h.text,
            original_text=h.original_text,
            source_language=result.source_language or language,
            category=h.category,
            importance=h.importance,
            timestamp_ms=h.timestamp_ms,
        ))


async def _replace_summary(
    session,
    video: VideoAsset,
    result: SummaryResult,
    highlights: Optional[HighlightsResult],
    language,
) -> None:
    await session.execute(delete(VideoSummary).where(VideoSummary.video_id == video.id))
    session.add(VideoSummary(
        video_id=video.id,
        summary=result.summary,
        tldr=result.tldr,
        source_language=result.source_language or language,
        keywords=list(result.keywords),
        topics=list(highlights.topics) if highlights else [],
        sentiment=highlights.sentiment if highlights else None,
    ))

    # Only fill metadata the uploader left empty
    if result.keywords and not video.tags:
        video.tags = list(result.keywords[:MAX_KEYWORD_TAGS])
    if result.tldr and not (video.description and video.description.strip()):
        video.description = result.tldr
