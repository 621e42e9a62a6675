from __future__ import annotations

"""
Rendition naming and the quality ladder.

One canonical derivation used by both the transcoding orchestrator (output
destinations) and the delivery signer (read URLs). Keep them in lock-step by
never building rendition paths anywhere else.

    input key        d/user/u1/video_1735123456789.mp4
    rendition key    d/user/u1/video_1735123456789-hls-medium
    mp4 object       <prefix>d/user/u1/video_1735123456789-mp4-medium.mp4
    hls playlist     <prefix>d/user/u1/video_1735123456789-hls-medium/index.m3u8
"""

import re
from dataclasses import dataclass
from typing import Dict, Union

from app.core.exceptions import InvalidArgument
from app.schemas.media import OutputFormat, Quality

_EXT_RE = re.compile(r"\.[^/.]+$")

HLS_PLAYLIST_NAME = "index"


@dataclass(frozen=True)
class QualityProfile:
    width: int
    height: int
    bitrate: int
    max_bitrate: int

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def bitrates(self) -> tuple[int, int]:
        return (self.bitrate, self.max_bitrate)


QUALITY_TABLE: Dict[Quality, QualityProfile] = {
    Quality.LOW: QualityProfile(640, 360, 1_000_000, 1_200_000),
    Quality.MEDIUM: QualityProfile(1280, 720, 2_500_000, 3_000_000),
    Quality.HIGH: QualityProfile(1920, 1080, 5_000_000, 6_000_000),
    Quality.ULTRA: QualityProfile(3840, 2160, 8_000_000, 10_000_000),
}


def quality_profile(quality: Union[Quality, str]) -> QualityProfile:
    return QUALITY_TABLE[Quality(quality)]


def strip_extension(key: str) -> str:
    """Drop the final `.ext` of the last path segment, if any."""
    return _EXT_RE.sub("", key)


def rendition_key(input_key: str, fmt: Union[OutputFormat, str], quality: Union[Quality, str]) -> str:
    k = str(input_key or "").strip().lstrip("/")
    if not k:
        raise InvalidArgument("Input key must not be empty", details={"field": "input_key"})
    return f"{strip_extension(k)}-{OutputFormat(fmt).value}-{Quality(quality).value}"


def rendition_object_key(
    input_key: str,
    fmt: Union[OutputFormat, str],
    quality: Union[Quality, str],
    prefix: str = "",
) -> str:
    """Object path a client reads for a rendition (mp4 file or HLS master playlist)."""
    fmt = OutputFormat(fmt)
    base = f"{prefix}{rendition_key(input_key, fmt, quality)}"
    if fmt is OutputFormat.MP4:
        return f"{base}.mp4"
    if fmt is OutputFormat.HLS:
        return f"{base}/{HLS_PLAYLIST_NAME}.m3u8"
    raise InvalidArgument(
        f"Unsupported rendition format: {fmt.value}",
        details={"unsupported_formats": [fmt.value]},
    )


def rendition_destination(
    bucket: str,
    input_key: str,
    fmt: Union[OutputFormat, str],
    quality: Union[Quality, str],
    prefix: str = "",
) -> str:
    """Engine destination URI; the engine appends `.mp4` / `.m3u8` itself."""
    fmt = OutputFormat(fmt)
    base = f"s3://{bucket}/{prefix}{rendition_key(input_key, fmt, quality)}"
    if fmt is OutputFormat.MP4:
        return base
    if fmt is OutputFormat.HLS:
        return f"{base}/{HLS_PLAYLIST_NAME}"
    raise InvalidArgument(
        f"Unsupported rendition format: {fmt.value}",
        details={"unsupported_formats": [fmt.value]},
    )


__all__ = [
    "QualityProfile",
    "QUALITY_TABLE",
    "HLS_PLAYLIST_NAME",
    "quality_profile",
    "strip_extension",
    "rendition_key",
    "rendition_object_key",
    "rendition_destination",
]
