"""Moderation sampling and verdict aggregation."""

from types import SimpleNamespace

import pytest

from vidstage.config import ModerationConfig
from vidstage.orchestrator.state import ContentSafetyStatus, ModerationSeverity
from vidstage.pipeline.moderation import analyze_video, sample_segments
from vidstage.schemas.collaborators import SafetyCategory, SafetyResult, SafetySeverity
from vidstage.services.base import ContentSafetyClassifier
from vidstage.services.local_engines import KeywordSafetyClassifier


def _segments(texts):
    return [SimpleNamespace(start_ms=i * 1000, text=t) for i, t in enumerate(texts)]


class UnavailableClassifier(ContentSafetyClassifier):
    async def analyze_text(self, text):
        raise ConnectionError("classifier offline")


class UnsafeWithoutCategories(ContentSafetyClassifier):
    async def analyze_text(self, text):
        return SafetyResult(is_safe=False)


class DuplicateCategories(ContentSafetyClassifier):
    async def analyze_text(self, text):
        category = SafetyCategory(category="Hate", severity=SafetySeverity.MEDIUM, score=0.5)
        return SafetyResult(is_safe=False, overall_severity=SafetySeverity.MEDIUM, categories=[category, category])


def test_sample_segments_keeps_short_transcripts():
    segs = list(range(5))
    assert sample_segments(segs, 20) == segs


def test_sample_segments_is_evenly_spaced():
    segs = list(range(100))
    sampled = sample_segments(segs, 20)
    assert len(sampled) == 20
    assert sampled[:3] == [0, 5, 10]
    assert sampled == sorted(sampled)


def test_sample_segments_rejects_empty_sample():
    with pytest.raises(ValueError):
        sample_segments(list(range(5)), 0)


@pytest.mark.asyncio
async def test_clean_content_is_safe():
    verdict = await analyze_video(
        KeywordSafetyClassifier(), "Cooking pasta", "Step by step", _segments(["Boil water"]), ModerationConfig()
    )
    assert verdict.is_clean
    assert verdict.reasons == []
    assert verdict.highest_severity is None


@pytest.mark.asyncio
async def test_findings_from_every_field_are_combined():
    verdict = await analyze_video(
        KeywordSafetyClassifier(),
        "profanity_test",
        "moderate_flag_test",
        _segments(["fine", "hate_speech_test here"]),
        ModerationConfig(),
    )
    assert verdict.status == ContentSafetyStatus.FLAGGED
    assert verdict.highest_severity == ModerationSeverity.HIGH
    assert verdict.reasons == [
        "Title: Profanity (Low)",
        "Description: Violence (Medium)",
        "Transcript@1000ms: Hate (High)",
    ]


@pytest.mark.asyncio
async def test_blank_description_is_not_analyzed():
    calls = []

    class Recording(KeywordSafetyClassifier):
        async def analyze_text(self, text):
            calls.append(text)
            return await super().analyze_text(text)

    await analyze_video(Recording(), "Title", "   ", [], ModerationConfig())
    assert calls == ["Title"]


@pytest.mark.asyncio
async def test_reasons_are_distinct():
    verdict = await analyze_video(DuplicateCategories(), "t", None, [], ModerationConfig())
    assert verdict.reasons == ["Title: Hate (Medium)"]


@pytest.mark.asyncio
async def test_unsafe_flag_without_categories_still_flags():
    verdict = await analyze_video(UnsafeWithoutCategories(), "t", None, [], ModerationConfig())
    assert verdict.status == ContentSafetyStatus.FLAGGED
    assert verdict.highest_severity is None


@pytest.mark.asyncio
async def test_classifier_errors_fail_open_by_default():
    verdict = await analyze_video(UnavailableClassifier(), "t", "d", [], ModerationConfig())
    assert verdict.is_clean


@pytest.mark.asyncio
async def test_classifier_errors_are_uncertain_when_fail_closed():
    verdict = await analyze_video(UnavailableClassifier(), "t", "d", [], ModerationConfig(fail_open=False))
    assert verdict.status == ContentSafetyStatus.UNCERTAIN
    assert verdict.reasons == ["Content safety check unavailable"]
    assert not verdict.is_clean


@pytest.mark.asyncio
async def test_uncertain_verdict_quarantines_video(ctx, settings):
    from conftest import ingest_video
    from vidstage.db.models import VideoAsset

    settings.moderation.fail_open = False
    ctx.collaborators.safety = UnavailableClassifier()
    video_id = await ingest_video(ctx)

    async with ctx.session_factory() as session:
        video = await session.get(VideoAsset, video_id)
    assert video.status == "quarantined"
