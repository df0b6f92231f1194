"""Local collaborator engines and the content store."""

import uuid

import pytest

from conftest import DEFAULT_SEGMENTS, THREE_PROFILES
from vidstage.schemas.collaborators import PlaylistVariant, SafetySeverity, TranscriptionResult
from vidstage.services.local_engines import (
    PLACEHOLDER_PNG,
    KeywordSafetyClassifier,
    LocalPlaylistEncoder,
    PlaceholderThumbnailExtractor,
    StubTranscriptionEngine,
    render_master_playlist,
    sidecar_path,
    write_sidecar_payload,
)


def _variant(quality, width, height, video_kbps, audio_kbps) -> PlaylistVariant:
    return PlaylistVariant(
        quality=quality,
        width=width,
        height=height,
        video_bitrate_kbps=video_kbps,
        audio_bitrate_kbps=audio_kbps,
        playlist_path=f"hls/x/{quality}/playlist.m3u8",
    )


# -- content store ----------------------------------------------------------


@pytest.mark.asyncio
async def test_store_put_fetch_and_delete_tree(store):
    await store.put("hls/abc/720p/playlist.m3u8", b"#EXTM3U\n")
    await store.put("hls/abc/master.m3u8", b"#EXTM3U\n")
    assert await store.fetch("hls/abc/720p/playlist.m3u8") == b"#EXTM3U\n"

    await store.delete("hls/abc")
    assert not await store.exists("hls/abc/master.m3u8")
    # Deleting twice is harmless
    await store.delete("hls/abc")


@pytest.mark.asyncio
async def test_store_move(store):
    await store.put("uploads/tmp.bin", b"data")
    await store.move("uploads/tmp.bin", "uploads/final.bin")
    assert not await store.exists("uploads/tmp.bin")
    assert await store.fetch("uploads/final.bin") == b"data"


@pytest.mark.parametrize("path", ["../outside.txt", "uploads/../../etc/passwd", "/etc/passwd"])
def test_store_rejects_paths_outside_root(store, path):
    with pytest.raises(ValueError):
        store.resolve(path)


# -- transcription ------------------------------------------------------------


@pytest.mark.asyncio
async def test_stub_transcription_reads_sidecar(store):
    await store.put("uploads/talk.mp4", b"video")
    payload = TranscriptionResult(duration_ms=15000, segments=DEFAULT_SEGMENTS)
    await store.put(sidecar_path("uploads/talk.mp4"), write_sidecar_payload(payload))

    result = await StubTranscriptionEngine(store).transcribe("uploads/talk.mp4", "en-US")
    assert result.detected_language == "en-US"
    assert [s.start_ms for s in result.segments] == [0, 4000, 9000]
    assert result.duration_ms == 15000


@pytest.mark.asyncio
async def test_stub_transcription_without_sidecar_is_empty(store):
    await store.put("uploads/silent.mp4", b"video")
    result = await StubTranscriptionEngine(store).transcribe("uploads/silent.mp4", "fr")
    assert result.segments == []
    assert result.detected_language == "fr"


@pytest.mark.asyncio
async def test_stub_transcription_errors(store):
    engine = StubTranscriptionEngine(store)
    with pytest.raises(FileNotFoundError):
        await engine.transcribe("uploads/missing.mp4")

    await store.put("uploads/bad.mp4", b"video")
    await store.put(sidecar_path("uploads/bad.mp4"), b'{"segments": "nope"}')
    with pytest.raises(ValueError, match="Malformed transcript sidecar"):
        await engine.transcribe("uploads/bad.mp4")


# -- safety -------------------------------------------------------------------


@pytest.mark.asyncio
async def test_keyword_classifier():
    classifier = KeywordSafetyClassifier()

    clean = await classifier.analyze_text("A walk in the park")
    assert clean.is_safe
    assert clean.categories == []

    flagged = await classifier.analyze_text("mild_flag_test and UNSAFE_TEST_CONTENT")
    assert not flagged.is_safe
    assert flagged.overall_severity == SafetySeverity.HIGH
    assert {c.category for c in flagged.categories} == {"Violence"}
    assert len(flagged.categories) == 2


@pytest.mark.asyncio
async def test_keyword_classifier_custom_triggers():
    classifier = KeywordSafetyClassifier({"spoiler": ("Spoilers", SafetySeverity.LOW)})
    assert (await classifier.analyze_text("unsafe_test_content")).is_safe
    result = await classifier.analyze_text("Major SPOILER ahead")
    assert result.categories[0].category == "Spoilers"


# -- thumbnails and encoding ----------------------------------------------------


@pytest.mark.asyncio
async def test_placeholder_thumbnail_requires_source(store):
    extractor = PlaceholderThumbnailExtractor(store)
    with pytest.raises(FileNotFoundError):
        await extractor.extract_thumbnail("uploads/missing.mp4")

    await store.put("uploads/a.mp4", b"video")
    png = await extractor.extract_thumbnail("uploads/a.mp4")
    assert png == PLACEHOLDER_PNG
    assert png.startswith(b"\x89PNG")


def test_master_playlist_lists_variants_in_given_order():
    text = render_master_playlist([
        _variant("1080p", 1920, 1080, 5000, 192),
        _variant("360p", 640, 360, 600, 64),
    ])
    lines = text.splitlines()
    assert lines[:2] == ["#EXTM3U", "#EXT-X-VERSION:3"]
    assert lines[2] == '#EXT-X-STREAM-INF:BANDWIDTH=5192000,RESOLUTION=1920x1080,NAME="1080p"'
    assert lines[3] == "1080p/playlist.m3u8"
    assert lines[4] == '#EXT-X-STREAM-INF:BANDWIDTH=664000,RESOLUTION=640x360,NAME="360p"'
    assert lines[5] == "360p/playlist.m3u8"


@pytest.mark.asyncio
async def test_local_encoder_writes_rendition(store):
    video_id = uuid.uuid4()
    await store.put("uploads/a.mp4", b"0123456789")
    encoder = LocalPlaylistEncoder(store)

    result = await encoder.encode_variant(video_id, "uploads/a.mp4", THREE_PROFILES[1])
    assert result.playlist_path == f"hls/{video_id}/720p/playlist.m3u8"
    assert result.size_bytes == 10
    playlist = (await store.fetch(result.playlist_path)).decode()
    assert "#EXT-X-ENDLIST" in playlist
    assert await store.fetch(f"{result.segments_path}/segment_000.ts") == b"0123456789"

    master = await encoder.generate_master_playlist(video_id, [_variant("720p", 1280, 720, 2500, 128)])
    assert master == f"hls/{video_id}/master.m3u8"
