"""State machine constants and transition logic for the stage ledger.

Defines the video lifecycle, the per-stage job states and the per-variant
encode states, plus the terminal sets that gates rely on.
"""

from enum import StrEnum


class VideoStatus(StrEnum):
    UPLOADING = "uploading"
    QUEUED = "queued"
    INDEXING = "indexing"
    MODERATING = "moderating"
    PUBLISHED = "published"
    QUARANTINED = "quarantined"
    REJECTED = "rejected"
    FAILED = "failed"


class Stage(StrEnum):
    MALWARE_SCAN = "malware_scan"
    CONTENT_MODERATION = "content_moderation"
    TRANSCRIPTION = "transcription"
    THUMBNAIL_GENERATION = "thumbnail_generation"
    SEARCH_INDEXING = "search_indexing"
    AI_HIGHLIGHTS = "ai_highlights"


class JobStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class VariantStatus(StrEnum):
    PENDING = "pending"
    ENCODING = "encoding"
    COMPLETED = "completed"
    FAILED = "failed"


class ContentSafetyStatus(StrEnum):
    PENDING = "pending"
    SAFE = "safe"
    FLAGGED = "flagged"
    UNCERTAIN = "uncertain"


class ModerationSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReviewerDecision(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


# Stage order for status listings
STAGE_ORDER = [
    Stage.MALWARE_SCAN,
    Stage.CONTENT_MODERATION,
    Stage.TRANSCRIPTION,
    Stage.SEARCH_INDEXING,
    Stage.THUMBNAIL_GENERATION,
    Stage.AI_HIGHLIGHTS,
]

TERMINAL_JOB_STATES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.SKIPPED}

TERMINAL_VARIANT_STATES = {VariantStatus.COMPLETED, VariantStatus.FAILED}

# Video states a reviewer decision can be applied to
REVIEWABLE_VIDEO_STATES = {VideoStatus.QUARANTINED, VideoStatus.MODERATING}

# Video states that must never be overwritten by a later Published transition
HELD_VIDEO_STATES = {VideoStatus.QUARANTINED, VideoStatus.REJECTED}

_SEVERITY_RANK = {
    ModerationSeverity.LOW: 0,
    ModerationSeverity.MEDIUM: 1,
    ModerationSeverity.HIGH: 2,
}

# Allowed transitions made by a stage's own handler. Skipped is set by gates.
JOB_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.IN_PROGRESS},
    JobStatus.IN_PROGRESS: {
        JobStatus.IN_PROGRESS,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.PENDING,
    },
}


def is_terminal(status: str) -> bool:
    """Check if a job status is terminal (requires an external reset to leave)."""
    return status in TERMINAL_JOB_STATES


def can_transition(current: str, target: str) -> bool:
    """Check if a handler may move its own job row from current to target.

    Args:
        current: Current job status
        target: Desired job status

    Returns:
        True if the transition is part of the per-stage state machine

    Examples:
        >>> can_transition("pending", "in_progress")
        True
        >>> can_transition("completed", "in_progress")
        False
    """
    return target in JOB_TRANSITIONS.get(current, set())


def higher_severity(a: str, b: str) -> ModerationSeverity:
    """Return the more severe of two moderation severities."""
    a, b = ModerationSeverity(a), ModerationSeverity(b)
    return a if _SEVERITY_RANK[a] >= _SEVERITY_RANK[b] else b
