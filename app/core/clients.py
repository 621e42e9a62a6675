# app/core/clients.py
from __future__ import annotations

"""
Process-wide AWS client handles.

Built once in the FastAPI lifespan and stored on `app.state.media_clients`.
boto3 clients are thread-safe, so every request (and every worker thread
spawned by `app.utils.upstream`) shares the same connection pool.

Retry policy lives in `app.utils.upstream`; botocore's built-in retries are
switched off so a read is never retried twice over.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig

from app.core.config import Settings
from app.core.exceptions import ConfigurationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaClients:
    s3: Any
    mediaconvert: Optional[Any] = None


def _secret_value(v: Any) -> Optional[str]:
    if v is None:
        return None
    return v.get_secret_value() if hasattr(v, "get_secret_value") else str(v)


def _boto_config(s: Settings, **extra: Any) -> BotoConfig:
    return BotoConfig(
        connect_timeout=s.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        read_timeout=s.UPSTREAM_READ_TIMEOUT_SECONDS,
        max_pool_connections=s.AWS_MAX_POOL_CONNECTIONS,
        retries={"total_max_attempts": 1, "mode": "standard"},
        **extra,
    )


def _client_kwargs(s: Settings) -> Dict[str, Any]:
    """Explicit credentials when configured; otherwise the standard AWS chain."""
    kwargs: Dict[str, Any] = {"region_name": s.AWS_REGION}
    ak = s.AWS_ACCESS_KEY_ID
    sk = _secret_value(s.AWS_SECRET_ACCESS_KEY)
    st = _secret_value(s.AWS_SESSION_TOKEN)
    if ak and sk:
        kwargs["aws_access_key_id"] = ak
        kwargs["aws_secret_access_key"] = sk
        if st:
            kwargs["aws_session_token"] = st
    return kwargs


def init_media_clients(s: Settings) -> MediaClients:
    """
    Build the S3 and MediaConvert clients.

    MediaConvert is optional: without an endpoint/role the transcoding routes
    are simply not wired (the orchestrator raises `ConfigurationError`).
    """
    if not s.AWS_BUCKET_NAME:
        raise ConfigurationError("AWS_BUCKET_NAME not configured")

    base = _client_kwargs(s)
    s3_kwargs = dict(base)
    if s.AWS_S3_ENDPOINT_URL:
        s3_kwargs["endpoint_url"] = s.AWS_S3_ENDPOINT_URL
    try:
        s3 = boto3.client(
            "s3",
            config=_boto_config(s, signature_version="s3v4", s3={"addressing_style": "virtual"}),
            **s3_kwargs,
        )
    except Exception as e:  # pragma: no cover
        raise ConfigurationError(f"Failed to create S3 client: {e}") from e

    mediaconvert = None
    if s.MEDIACONVERT_ENDPOINT_URL or s.MEDIACONVERT_ROLE_ARN:
        mc_kwargs = dict(base)
        if s.MEDIACONVERT_ENDPOINT_URL:
            mc_kwargs["endpoint_url"] = s.MEDIACONVERT_ENDPOINT_URL
        try:
            mediaconvert = boto3.client("mediaconvert", config=_boto_config(s), **mc_kwargs)
        except Exception as e:  # pragma: no cover
            raise ConfigurationError(f"Failed to create MediaConvert client: {e}") from e

    log.info(
        "[Clients] S3 ready (bucket=%s, endpoint=%s); MediaConvert %s",
        s.AWS_BUCKET_NAME,
        "custom" if s.AWS_S3_ENDPOINT_URL else "aws",
        "ready" if mediaconvert is not None else "not configured",
    )
    return MediaClients(s3=s3, mediaconvert=mediaconvert)


__all__ = ["MediaClients", "init_media_clients"]
