"""Processing job and variant ledger operations.

Claims are compare-and-swap UPDATEs so that duplicate deliveries of the same
job race safely: exactly one delivery moves a row out of Pending. A row left
InProgress by a lost delivery becomes claimable again once its claim is older
than ``stale_after`` seconds.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vidstage.db.models import ProcessingJob, VideoVariant
from vidstage.errors import InvalidStateError, NotFoundFailure
from vidstage.orchestrator.state import JobStatus, Stage, VariantStatus, can_transition

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def jobs_by_stage(session: AsyncSession, video_id: uuid.UUID) -> dict[str, ProcessingJob]:
    """Load all stage rows for a video keyed by stage name."""
    result = await session.execute(
        select(ProcessingJob).where(ProcessingJob.video_id == video_id)
    )
    return {job.stage: job for job in result.scalars().all()}


async def get_stage_job(
    session: AsyncSession, video_id: uuid.UUID, stage: Stage
) -> Optional[ProcessingJob]:
    result = await session.execute(
        select(ProcessingJob).where(
            ProcessingJob.video_id == video_id,
            ProcessingJob.stage == stage,
        )
    )
    return result.scalar_one_or_none()


async def load_job(session: AsyncSession, job_id: uuid.UUID) -> ProcessingJob:
    """Load a stage row by id.

    Raises:
        NotFoundFailure: If the row does not exist (e.g. deleted by reprocess)
    """
    job = await session.get(ProcessingJob, job_id, populate_existing=True)
    if job is None:
        raise NotFoundFailure(f"Processing job {job_id} not found")
    return job


async def variants_for(session: AsyncSession, video_id: uuid.UUID) -> list[VideoVariant]:
    result = await session.execute(
        select(VideoVariant).where(VideoVariant.video_id == video_id)
    )
    return list(result.scalars().all())


async def claim_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    message: Optional[str] = None,
    stale_after: Optional[float] = None,
) -> Optional[ProcessingJob]:
    """Atomically move a stage row to InProgress and count the attempt.

    Returns:
        The refreshed row, or None if another delivery holds it or it is terminal
    """
    now = utcnow()
    claimable = ProcessingJob.status == JobStatus.PENDING
    if stale_after is not None:
        claimable = or_(
            claimable,
            and_(
                ProcessingJob.status == JobStatus.IN_PROGRESS,
                ProcessingJob.started_at < now - timedelta(seconds=stale_after),
            ),
        )

    result = await session.execute(
        update(ProcessingJob)
        .where(ProcessingJob.id == job_id, claimable)
        .values(
            status=JobStatus.IN_PROGRESS,
            attempts=ProcessingJob.attempts + 1,
            progress=0,
            progress_message=message,
            started_at=now,
            completed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    if result.rowcount != 1:
        return None
    return await load_job(session, job_id)


async def claim_variant(
    session: AsyncSession,
    variant_id: uuid.UUID,
    message: Optional[str] = None,
    stale_after: Optional[float] = None,
) -> Optional[VideoVariant]:
    """Atomically move a variant from Pending to Encoding.

    With ``stale_after``, an Encoding variant whose claim is older than that
    many seconds is claimed again.
    """
    now = utcnow()
    claimable = VideoVariant.status == VariantStatus.PENDING
    if stale_after is not None:
        claimable = or_(
            claimable,
            and_(
                VideoVariant.status == VariantStatus.ENCODING,
                VideoVariant.started_at < now - timedelta(seconds=stale_after),
            ),
        )

    result = await session.execute(
        update(VideoVariant)
        .where(VideoVariant.id == variant_id, claimable)
        .values(
            status=VariantStatus.ENCODING,
            progress=0,
            progress_message=message,
            started_at=now,
            completed_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    if result.rowcount != 1:
        return None
    return await session.get(VideoVariant, variant_id, populate_existing=True)


def set_progress(row, progress: int, message: Optional[str] = None) -> None:
    row.progress = progress
    row.progress_message = message


def _advance(job: ProcessingJob, target: JobStatus) -> None:
    """Move a claimed row to target, refusing moves outside JOB_TRANSITIONS.

    Raises:
        InvalidStateError: If the handler does not own the row in a state that
            may move to target
    """
    if not can_transition(job.status, target):
        raise InvalidStateError(
            f"Processing job {job.id} ({job.stage}) cannot move from {job.status} to {target}"
        )
    job.status = target


def complete_job(job: ProcessingJob, message: Optional[str] = None) -> None:
    _advance(job, JobStatus.COMPLETED)
    job.progress = 100
    job.progress_message = message
    job.completed_at = utcnow()


def fail_job(job: ProcessingJob, error: str) -> None:
    _advance(job, JobStatus.FAILED)
    job.last_error = error
    job.completed_at = utcnow()


def requeue_job(job: ProcessingJob, error: str, message: Optional[str] = None) -> None:
    """Return a failed attempt to Pending, keeping its attempts count."""
    _advance(job, JobStatus.PENDING)
    job.last_error = error
    job.progress = 0
    job.progress_message = message


def skip_job(job: ProcessingJob, reason: Optional[str] = None) -> None:
    job.status = JobStatus.SKIPPED
    job.last_error = reason
    job.completed_at = utcnow()


def rearm_job(job: ProcessingJob) -> None:
    """Reset a row to Pending with the attempt counter cleared."""
    job.status = JobStatus.PENDING
    job.attempts = 0
    job.progress = 0
    job.progress_message = None
    job.last_error = None
    job.started_at = None
    job.completed_at = None
