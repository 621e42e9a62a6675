# tests/test_keys/test_renditions.py

import pytest

from app.core.exceptions import InvalidArgument
from app.schemas.media import OutputFormat, Quality
from app.utils.renditions import (
    QUALITY_TABLE,
    rendition_destination,
    rendition_key,
    rendition_object_key,
    strip_extension,
)

KEY = "d/user/u1/video_1735122656789.mp4"
BASE = "d/user/u1/video_1735122656789"


def test_quality_ladder_is_static():
    assert QUALITY_TABLE[Quality.LOW].resolution == (640, 360)
    assert QUALITY_TABLE[Quality.MEDIUM].bitrates == (2_500_000, 3_000_000)
    assert QUALITY_TABLE[Quality.HIGH].resolution == (1920, 1080)
    assert QUALITY_TABLE[Quality.ULTRA].bitrates == (8_000_000, 10_000_000)


@pytest.mark.parametrize(
    "quality,resolution,bitrates",
    [
        (Quality.LOW, (640, 360), (1_000_000, 1_200_000)),
        (Quality.MEDIUM, (1280, 720), (2_500_000, 3_000_000)),
        (Quality.HIGH, (1920, 1080), (5_000_000, 6_000_000)),
        (Quality.ULTRA, (3840, 2160), (8_000_000, 10_000_000)),
    ],
)
def test_quality_table_entries(quality, resolution, bitrates):
    assert QUALITY_TABLE[quality].resolution == resolution
    assert QUALITY_TABLE[quality].bitrates == bitrates


def test_bitrates_rise_with_quality():
    ladder = [QUALITY_TABLE[q] for q in (Quality.LOW, Quality.MEDIUM, Quality.HIGH, Quality.ULTRA)]
    for lower, higher in zip(ladder, ladder[1:]):
        assert lower.bitrate < higher.bitrate
        assert lower.max_bitrate < higher.max_bitrate


@pytest.mark.parametrize(
    "key,expected",
    [
        ("a/b/video.mp4", "a/b/video"),
        ("a/b/video.tar.gz", "a/b/video.tar"),
        ("a/b.dir/video", "a/b.dir/video"),
        ("video", "video"),
    ],
)
def test_strip_extension_only_touches_last_segment(key, expected):
    assert strip_extension(key) == expected


def test_rendition_key_suffix():
    assert rendition_key(KEY, OutputFormat.MP4, Quality.MEDIUM) == f"{BASE}-mp4-medium"
    assert rendition_key(KEY, "hls", "high") == f"{BASE}-hls-high"


def test_object_keys_for_readers():
    assert rendition_object_key(KEY, "mp4", "low", "transcoded/") == f"transcoded/{BASE}-mp4-low.mp4"
    assert rendition_object_key(KEY, "hls", "low", "transcoded/") == f"transcoded/{BASE}-hls-low/index.m3u8"


def test_engine_destinations_match_reader_paths():
    # The engine appends ".mp4" / ".m3u8" to the destination base name.
    mp4 = rendition_destination("out", KEY, "mp4", "ultra", "transcoded/")
    hls = rendition_destination("out", KEY, "hls", "ultra", "transcoded/")
    assert mp4 + ".mp4" == "s3://out/" + rendition_object_key(KEY, "mp4", "ultra", "transcoded/")
    assert hls + ".m3u8" == "s3://out/" + rendition_object_key(KEY, "hls", "ultra", "transcoded/")
    assert hls.endswith("/index")


def test_dash_has_no_rendition_path():
    with pytest.raises(InvalidArgument) as ei:
        rendition_object_key(KEY, "dash", "low")
    assert ei.value.details == {"unsupported_formats": ["dash"]}


def test_empty_input_key_rejected():
    with pytest.raises(InvalidArgument):
        rendition_key("", "mp4", "low")
