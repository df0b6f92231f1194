"""State machine and status roll-up."""

import pytest

from vidstage.orchestrator.coordinator import overall_status, progress_percentage
from vidstage.orchestrator.state import (
    ModerationSeverity,
    can_transition,
    higher_severity,
    is_terminal,
)


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "in_progress", True),
        ("in_progress", "completed", True),
        ("in_progress", "pending", True),
        ("pending", "completed", False),
        ("completed", "in_progress", False),
        ("skipped", "pending", False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_terminal_states():
    assert is_terminal("completed")
    assert is_terminal("failed")
    assert is_terminal("skipped")
    assert not is_terminal("pending")
    assert not is_terminal("in_progress")


def test_higher_severity():
    assert higher_severity("low", "high") == ModerationSeverity.HIGH
    assert higher_severity("medium", "low") == ModerationSeverity.MEDIUM
    assert higher_severity("low", "low") == ModerationSeverity.LOW


def test_overall_status_rollup():
    assert overall_status([]) == "pending"
    assert overall_status(["skipped", "completed"]) == "completed"
    assert overall_status(["completed", "in_progress", "pending"]) == "in_progress"
    assert overall_status(["completed", "pending"]) == "pending"
    # Any failure wins, even with work still running
    assert overall_status(["in_progress", "failed"]) == "failed"


def test_progress_percentage_counts_skipped_as_done():
    assert progress_percentage([]) == 0
    assert progress_percentage(["completed", "skipped", "pending", "failed"]) == 50
    assert progress_percentage(["completed"] * 3) == 100
