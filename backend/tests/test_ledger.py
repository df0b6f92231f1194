"""Handler-side ledger writes and the job transition table."""

import pytest

from vidstage.db.models import ProcessingJob
from vidstage.errors import InvalidStateError
from vidstage.orchestrator.ledger import complete_job, fail_job, requeue_job


def _row(status: str, attempts: int = 1) -> ProcessingJob:
    return ProcessingJob(stage="transcription", status=status, attempts=attempts, progress=40)


def test_complete_claimed_row():
    row = _row("in_progress")
    complete_job(row, "done")
    assert row.status == "completed"
    assert row.progress == 100
    assert row.completed_at is not None


def test_fail_claimed_row():
    row = _row("in_progress")
    fail_job(row, "boom")
    assert row.status == "failed"
    assert row.last_error == "boom"


def test_requeue_keeps_attempt_count():
    row = _row("in_progress", attempts=2)
    requeue_job(row, "timeout", "Retrying in 4.0s")
    assert row.status == "pending"
    assert row.attempts == 2
    assert row.progress == 0
    assert row.last_error == "timeout"


@pytest.mark.parametrize("status", ["pending", "completed", "failed", "skipped"])
def test_unclaimed_row_cannot_complete(status):
    row = _row(status)
    with pytest.raises(InvalidStateError):
        complete_job(row)
    assert row.status == status


def test_terminal_row_cannot_fail_or_requeue():
    with pytest.raises(InvalidStateError):
        fail_job(_row("completed"), "late error")
    with pytest.raises(InvalidStateError):
        requeue_job(_row("skipped"), "late error")
