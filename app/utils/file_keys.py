from __future__ import annotations

"""
Storage key derivation.

Layout (single bucket, environments separated by a one-letter prefix):

    {env_prefix}/{entity_type}/{entity_id}/{media_type}_{timestamp_ms}.{ext}

Examples:
    d/user/user_123/avatar_1735123456789.jpg
    p/course/course_456/video_1735123456789.mp4

Environment prefixes: d (dev), t (test), s (staging), p (production).

The timestamp is passed in by the caller so derivation stays pure.
"""

from datetime import datetime, timezone
from typing import Union

from app.core.exceptions import ConfigurationError, InvalidArgument
from app.schemas.media import Environment

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ENV_PREFIXES = {
    Environment.DEV: "d",
    Environment.TEST: "t",
    Environment.STAGING: "s",
    Environment.PRODUCTION: "p",
}

_ENV_ALIASES = {
    "dev": Environment.DEV,
    "development": Environment.DEV,
    "test": Environment.TEST,
    "staging": Environment.STAGING,
    "production": Environment.PRODUCTION,
    "prod": Environment.PRODUCTION,
}


def parse_environment(value: Union[str, Environment, None]) -> Environment:
    """Map a configured environment name onto the closed enum."""
    if isinstance(value, Environment):
        return value
    env = _ENV_ALIASES.get(str(value or "").strip().lower())
    if env is None:
        raise ConfigurationError(
            f"Invalid environment: {value!r}",
            details={"allowed": sorted(_ENV_ALIASES)},
        )
    return env


def env_prefix(value: Union[str, Environment]) -> str:
    return ENV_PREFIXES[parse_environment(value)]


def epoch_millis(now: datetime) -> int:
    """Exact milliseconds since the epoch; naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    delta = now - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def _segment(name: str, value: str) -> str:
    s = str(value or "").strip()
    if not s or "/" in s or s in {".", ".."}:
        raise InvalidArgument(f"Invalid {name}: {value!r}", details={"field": name})
    return s


def derive_key(
    env: Union[str, Environment],
    entity_type: str,
    entity_id: str,
    media_type: str,
    extension: str,
    now: datetime,
) -> str:
    """Build the storage key for an upload intent at `now`."""
    prefix = env_prefix(env)
    ext = _segment("file_extension", str(extension or "").strip().lstrip("."))
    return (
        f"{prefix}/{_segment('entity_type', entity_type)}/{_segment('entity_id', entity_id)}/"
        f"{_segment('media_type', media_type)}_{epoch_millis(now)}.{ext}"
    )


__all__ = ["ENV_PREFIXES", "parse_environment", "env_prefix", "epoch_millis", "derive_key"]
