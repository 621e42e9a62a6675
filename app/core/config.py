# app/core/config.py
from __future__ import annotations

"""
# Media Uploads API — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; explicit where prod needs secrets.
- AWS handles (S3, MediaConvert, CloudFront) are optional at import time so
  the module never crashes in dev; the components that need them raise
  `ConfigurationError` when they are built at startup.
- Robust URL / PEM normalization for values stored in env.

## Usage
    from app.core.config import settings
"""

import logging
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


def _normalize_url_like(v: str | None, *, require_scheme: bool = True) -> str:
    """Normalize to a string URL without trailing slash."""
    s = (v or "").strip()
    if not s:
        return ""
    if require_scheme and not (s.startswith("http://") or s.startswith("https://")):
        s = "https://" + s
    return s.rstrip("/")


def normalize_pem(raw: str | None) -> str:
    """
    Cloud-friendly normalization for PEM stored in env:
    allows `\\n`-escaped single-line strings.
    """
    s = (raw or "").strip()
    if "-----BEGIN" in s and "\\n" in s:
        s = s.replace("\\n", "\n")
    return s


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Notes:
        - `ENV` is kept as a raw string on purpose: it is parsed into the closed
          environment enum by the key deriver, which reports an unknown value
          as a `ConfigurationError` at startup.
        - Prefer the convenience properties when composing URLs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "Media Uploads API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: str = "dev"
    ENABLE_DOCS: bool = True

    # ── CORS ──────────────────────────────────────────────────
    FRONTEND_ORIGINS: Optional[str] = None  # CSV

    # ── AWS credentials / region ──────────────────────────────
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    AWS_SESSION_TOKEN: Optional[SecretStr] = None
    AWS_REGION: str = "us-east-1"
    AWS_MAX_POOL_CONNECTIONS: int = Field(50, ge=1, le=500)

    # ── S3 ────────────────────────────────────────────────────
    AWS_BUCKET_NAME: Optional[str] = None  # uploads (transcoding input) bucket
    AWS_S3_ENDPOINT_URL: Optional[str] = None  # LocalStack/MinIO
    TRANSCODE_OUTPUT_BUCKET: Optional[str] = None  # defaults to AWS_BUCKET_NAME
    TRANSCODE_OUTPUT_PREFIX: str = "transcoded/"

    # ── CloudFront (delivery signer) ──────────────────────────
    CLOUDFRONT_DOMAIN: Optional[str] = None  # e.g., d123.cloudfront.net
    CLOUDFRONT_KEY_PAIR_ID: Optional[str] = None
    CLOUDFRONT_PRIVATE_KEY_PEM: Optional[SecretStr] = None
    CLOUDFRONT_PRIVATE_KEY_PATH: Optional[str] = None

    # ── MediaConvert (transcoding engine) ─────────────────────
    MEDIACONVERT_ENDPOINT_URL: Optional[str] = None
    MEDIACONVERT_ROLE_ARN: Optional[str] = None
    MEDIACONVERT_QUEUE_ARN: Optional[str] = None

    # ── Upstream call policy ──────────────────────────────────
    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = Field(3.0, gt=0, le=60)
    UPSTREAM_READ_TIMEOUT_SECONDS: float = Field(10.0, gt=0, le=120)
    UPSTREAM_TIMEOUT_SECONDS: float = Field(15.0, gt=0, le=300)
    UPSTREAM_READ_ATTEMPTS: int = Field(3, ge=1, le=5)
    UPSTREAM_RETRY_BASE_DELAY: float = Field(0.25, ge=0, le=5)
    UPSTREAM_RETRY_MAX_DELAY: float = Field(2.0, ge=0, le=30)
    MULTIPART_PRESIGN_CONCURRENCY: int = Field(16, ge=1, le=256)

    # ── Upload records (collaborator store) ───────────────────
    UPLOAD_RECORD_STORE_IMPL: Optional[str] = None  # "module.path:ClassName"

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("FRONTEND_ORIGINS", mode="before")
    @classmethod
    def _normalize_frontend_csv(cls, v):
        return None if v is None else ",".join(_split_csv(str(v)))

    @field_validator("CLOUDFRONT_DOMAIN", mode="before")
    @classmethod
    def _normalize_cdn_domain(cls, v: str | None) -> str | None:
        """
        Accepts either 'cdn.example.com' or 'https://cdn.example.com' and
        normalizes to 'https://cdn.example.com' (no trailing slash).
        """
        s = (v or "").strip()
        if not s:
            return None
        return _normalize_url_like(s, require_scheme=not (s.startswith("http://") or s.startswith("https://")))

    @field_validator("TRANSCODE_OUTPUT_PREFIX", mode="before")
    @classmethod
    def _normalize_output_prefix(cls, v: str | None) -> str:
        """Empty, or a slash-free-leading prefix that ends with exactly one '/'."""
        s = (v or "").strip().strip("/")
        return f"{s}/" if s else ""

    # ── Derived / convenience properties ─────────────────────
    @property
    def frontend_origins_list(self) -> List[str]:
        return _split_csv(self.FRONTEND_ORIGINS)

    @property
    def cdn_base_url(self) -> str:
        """CloudFront base URL as a full https URL without trailing slash."""
        d = (self.CLOUDFRONT_DOMAIN or "").strip().rstrip("/")
        if not d:
            return ""
        return d if d.startswith(("http://", "https://")) else f"https://{d}"

    @property
    def transcode_output_bucket(self) -> Optional[str]:
        return self.TRANSCODE_OUTPUT_BUCKET or self.AWS_BUCKET_NAME


# Singleton instance
settings = Settings()
