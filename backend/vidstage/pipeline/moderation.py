"""Content moderation stage.

Analyzes the title, the description and an evenly spaced sample of transcript
segments with the content-safety classifier, aggregates the findings into a
ModerationVerdict and branches the pipeline on it:

- safe: video goes back to Indexing and SearchIndexing is armed
- flagged or uncertain: video is Quarantined and SearchIndexing is Skipped
  until a reviewer approves it

A reviewer decision recorded before the verdict lands takes precedence: the
verdict is stored but the video status and SearchIndexing are left alone.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import select

from vidstage.config import ModerationConfig
from vidstage.db.models import ModerationResult, TranscriptSegment, VideoAsset
from vidstage.errors import NotFoundFailure
from vidstage.orchestrator.context import PipelineContext
from vidstage.orchestrator.gates import arm_search_indexing
from vidstage.orchestrator.ledger import (
    claim_job,
    complete_job,
    fail_job,
    get_stage_job,
    load_job,
    skip_job,
)
from vidstage.orchestrator.state import (
    ContentSafetyStatus,
    JobStatus,
    ModerationSeverity,
    Stage,
    VideoStatus,
    higher_severity,
)
from vidstage.schemas.collaborators import SafetySeverity
from vidstage.schemas.jobs import ModerateContent
from vidstage.services.base import ContentSafetyClassifier

logger = logging.getLogger(__name__)

FLAGGED_SKIP_REASON = "Flagged by content moderation"


@dataclass
class ModerationVerdict:
    """Aggregated outcome of one moderation pass. Not an error."""

    status: ContentSafetyStatus
    reasons: list[str] = field(default_factory=list)
    highest_severity: Optional[ModerationSeverity] = None

    @property
    def is_clean(self) -> bool:
        return self.status == ContentSafetyStatus.SAFE


def sample_segments(segments: Sequence, max_samples: int = 20) -> list:
    """Pick at most max_samples evenly spaced segments, keeping order."""
    if max_samples < 1:
        raise ValueError(f"max_samples must be at least 1, got {max_samples}")
    n = len(segments)
    if n <= max_samples:
        return list(segments)
    step = n // max_samples
    return [segments[min(i * step, n - 1)] for i in range(max_samples)]


async def analyze_video(
    classifier: ContentSafetyClassifier,
    title: str,
    description: Optional[str],
    segments: Sequence[TranscriptSegment],
    config: ModerationConfig,
) -> ModerationVerdict:
    """Run the classifier over every analyzed field and union the findings.

    Classifier errors fail open unless ``config.fail_open`` is False, in which
    case an errored call yields an Uncertain verdict.
    """
    texts: list[tuple[str, str]] = [("Title", title)]
    if description and description.strip():
        texts.append(("Description", description))
    for seg in sample_segments(segments, config.transcript_sample_size):
        texts.append((f"Transcript@{seg.start_ms}ms", seg.text))

    reasons: list[str] = []
    highest: Optional[ModerationSeverity] = None
    flagged = False
    errored = False

    for context, text in texts:
        if not text or not text.strip():
            continue
        try:
            result = await classifier.analyze_text(text)
        except Exception as e:
            logger.warning(f"Content safety check failed for {context}: {e}")
            errored = True
            continue

        if not result.is_safe:
            flagged = True
        for category in result.categories:
            if category.severity == SafetySeverity.NONE:
                continue
            flagged = True
            severity = ModerationSeverity(category.severity.value)
            highest = severity if highest is None else higher_severity(highest, severity)
            reason = f"{context}: {category.category} ({severity.value.capitalize()})"
            if reason not in reasons:
                reasons.append(reason)

    if flagged:
        return ModerationVerdict(ContentSafetyStatus.FLAGGED, reasons, highest)
    if errored and not config.fail_open:
        return ModerationVerdict(
            ContentSafetyStatus.UNCERTAIN, ["Content safety check unavailable"]
        )
    return ModerationVerdict(ContentSafetyStatus.SAFE)


async def moderate_content(ctx: PipelineContext, job: ModerateContent) -> None:
    arm_indexing = False

    async with ctx.session_factory() as session:
        row = await claim_job(
            session,
            job.processing_job_id,
            "Analyzing content...",
            stale_after=ctx.settings.pipeline.stale_claim_seconds,
        )
        if row is None:
            logger.info(f"Video {job.video_id}: moderation not claimable, skipping delivery")
            return

        try:
            video = await session.get(VideoAsset, job.video_id)
            if video is None:
                raise NotFoundFailure(f"Video {job.video_id} not found")
            result = (await session.execute(
                select(ModerationResult).where(ModerationResult.video_id == job.video_id)
            )).scalar_one_or_none()
            if result is None:
                raise NotFoundFailure(f"Video {job.video_id} has no moderation record")
            if result.reviewer_decision is None:
                video.status = VideoStatus.MODERATING
            await session.commit()

            segments = (await session.execute(
                select(TranscriptSegment)
                .where(TranscriptSegment.video_id == job.video_id)
                .order_by(TranscriptSegment.start_ms)
            )).scalars().all()

            verdict = await analyze_video(
                ctx.collaborators.safety,
                video.title,
                video.description,
                segments,
                ctx.settings.moderation,
            )

            # Pick up a reviewer decision made while the classifier ran
            await session.refresh(result)
            await session.refresh(video)
            result.content_safety_status = verdict.status
            result.reasons = verdict.reasons
            result.highest_severity = verdict.highest_severity

            if result.reviewer_decision is not None:
                logger.info(
                    f"Video {job.video_id}: reviewer already decided "
                    f"({result.reviewer_decision}), verdict recorded only"
                )
            elif verdict.is_clean:
                video.status = VideoStatus.INDEXING
                arm_indexing = True
            else:
                video.status = VideoStatus.QUARANTINED
                search = await get_stage_job(session, job.video_id, Stage.SEARCH_INDEXING)
                if search is not None and search.status != JobStatus.COMPLETED:
                    skip_job(search, FLAGGED_SKIP_REASON)
                logger.warning(
                    f"Video {job.video_id}: quarantined ({verdict.status}): "
                    f"{'; '.join(verdict.reasons)}"
                )

            complete_job(row, f"Content {verdict.status}")
            await session.commit()

        except Exception as e:
            logger.exception(f"Video {job.video_id}: moderation failed")
            await session.rollback()
            row = await load_job(session, job.processing_job_id)
            fail_job(row, str(e))
            await session.commit()
            return

    if arm_indexing:
        await arm_search_indexing(ctx, job.video_id)
