"""Settings sources and validation."""

import pytest
from pydantic import ValidationError

from vidstage.config import EncodingConfig, ModerationConfig, QualityProfile, Settings


def test_default_profiles():
    names = [p.name for p in EncodingConfig().quality_profiles]
    assert names == ["1080p", "720p", "480p", "360p"]


def test_duplicate_profile_names_rejected():
    profile = QualityProfile(name="720p", width=1280, height=720, video_bitrate_kbps=2500, audio_bitrate_kbps=128)
    with pytest.raises(ValidationError):
        EncodingConfig(quality_profiles=[profile, profile])


@pytest.mark.parametrize("size", [0, -1])
def test_sample_size_must_be_positive(size):
    with pytest.raises(ValidationError):
        ModerationConfig(transcript_sample_size=size)


def test_master_playlist_attempts_must_be_positive():
    with pytest.raises(ValidationError):
        EncodingConfig(master_playlist_max_attempts=0)


def test_env_overrides_nested_fields(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VIDSTAGE_PIPELINE__WORKER_CONCURRENCY", "7")
    monkeypatch.setenv("VIDSTAGE_MODERATION__FAIL_OPEN", "false")

    s = Settings()
    assert s.pipeline.worker_concurrency == 7
    assert s.moderation.fail_open is False
    assert s.pipeline.transcription_max_attempts == 3


def test_yaml_file_is_loaded_from_working_directory(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text(
        "encoding:\n"
        "  claim_master_playlist: true\n"
        "  quality_profiles:\n"
        "    - {name: 480p, width: 854, height: 480, video_bitrate_kbps: 1000, audio_bitrate_kbps: 96}\n"
        "storage:\n"
        "  content_root: media\n"
    )

    s = Settings()
    assert s.encoding.claim_master_playlist is True
    assert [p.name for p in s.encoding.quality_profiles] == ["480p"]
    assert str(s.storage.content_root) == "media"


def test_env_beats_yaml(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("pipeline:\n  retry_base_delay: 5\n")
    monkeypatch.setenv("VIDSTAGE_PIPELINE__RETRY_BASE_DELAY", "0.5")

    assert Settings().pipeline.retry_base_delay == 0.5
