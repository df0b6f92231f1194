"""Job payload discrimination."""

import uuid

import pytest
from pydantic import ValidationError

from vidstage.config import QualityProfile
from vidstage.schemas.jobs import EncodeVariant, IngestVideo, ModerateContent, parse_job


def test_parse_job_picks_model_by_kind():
    video_id = uuid.uuid4()
    job = parse_job({"kind": "moderate", "video_id": str(video_id), "processing_job_id": str(uuid.uuid4())})
    assert isinstance(job, ModerateContent)
    assert job.video_id == video_id


def test_serialized_encode_job_keeps_profile():
    profile = QualityProfile(name="480p", width=854, height=480, video_bitrate_kbps=1000, audio_bitrate_kbps=96)
    original = EncodeVariant(video_id=uuid.uuid4(), variant_id=uuid.uuid4(), media_ref="uploads/a.mp4", profile=profile)

    job = parse_job(original.model_dump_json())
    assert isinstance(job, EncodeVariant)
    assert job.profile == profile
    assert job.job_id == original.job_id


def test_each_job_gets_a_fresh_id():
    video_id = uuid.uuid4()
    a = IngestVideo(video_id=video_id, media_ref="uploads/a.mp4")
    b = IngestVideo(video_id=video_id, media_ref="uploads/a.mp4")
    assert a.job_id != b.job_id


def test_unknown_kind_rejected():
    with pytest.raises(ValidationError):
        parse_job({"kind": "transcode_everything", "video_id": str(uuid.uuid4())})


def test_missing_stage_row_reference_rejected():
    with pytest.raises(ValidationError):
        parse_job({"kind": "index", "video_id": str(uuid.uuid4())})
