"""CLI smoke tests through Typer's runner."""

import logging
import re

import pytest
from typer.testing import CliRunner

from conftest import DEFAULT_SEGMENTS
from vidstage.cli import commands
from vidstage.schemas.collaborators import TranscriptionResult
from vidstage.services.local_engines import write_sidecar_payload

runner = CliRunner()

UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


@pytest.fixture
def cli_settings(settings, monkeypatch):
    monkeypatch.setattr(commands, "settings", settings)
    yield settings
    # setup_logging detaches the package logger from the root logger
    logger = logging.getLogger("vidstage")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True


def _ingest(tmp_path, title):
    media = tmp_path / "talk.mp4"
    media.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    sidecar = tmp_path / "talk.mp4.transcript.json"
    sidecar.write_bytes(write_sidecar_payload(TranscriptionResult(segments=DEFAULT_SEGMENTS)))
    return runner.invoke(commands.app, ["ingest", str(media), "--title", title, "--owner", "alice"])


def test_ingest_runs_pipeline_to_published(cli_settings, tmp_path):
    result = _ingest(tmp_path, "Team sync")
    assert result.exit_code == 0, result.output
    assert "Registered video" in result.output
    assert "published" in result.output

    listing = runner.invoke(commands.app, ["list", "--status", "published"])
    assert listing.exit_code == 0
    assert "Team sync" in listing.output


def test_review_flow(cli_settings, tmp_path):
    result = _ingest(tmp_path, "unsafe_test_content")
    assert result.exit_code == 0, result.output
    video_id = UUID_RE.search(result.output).group(0)
    assert "quarantined" in result.output

    missing_notes = runner.invoke(commands.app, ["reject", video_id, "--reviewer", "r1", "--notes", " "])
    assert missing_notes.exit_code == 1
    assert "notes are required" in missing_notes.output

    approved = runner.invoke(commands.app, ["approve", video_id, "--reviewer", "r1"])
    assert approved.exit_code == 0, approved.output

    status = runner.invoke(commands.app, ["status", video_id])
    assert status.exit_code == 0
    assert "published" in status.output


def test_invalid_video_id(cli_settings):
    result = runner.invoke(commands.app, ["status", "not-a-uuid"])
    assert result.exit_code == 1
    assert "Invalid video UUID" in result.output


def test_unknown_video(cli_settings):
    result = runner.invoke(commands.app, ["reprocess", "00000000-0000-0000-0000-000000000000"])
    assert result.exit_code == 1
    assert "not found" in result.output
