from __future__ import annotations

"""
Media upload, delivery and transcoding schemas.

Design notes
------------
• Enums subclass `str, PyEnum` for JSON-friendly serialization; the value
  strings are part of storage keys and the public API, keep them stable.
• Internal result types (SignedUrl, MultipartSession, ...) are pydantic models
  so routers can return them directly.
• Request models (`*In`) validate shape only; semantic checks (e.g. `dash`
  being unsupported) live in the services so every caller gets them.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ──────────────────────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────────────────────
class Environment(str, PyEnum):
    """Deployment environment; each maps to a one-letter key prefix."""
    DEV = "dev"
    TEST = "test"
    STAGING = "staging"
    PRODUCTION = "production"


class Quality(str, PyEnum):
    """Rendition quality tier."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ULTRA = "ultra"


class OutputFormat(str, PyEnum):
    """Transcoding output format accepted by the request shape."""
    MP4 = "mp4"
    HLS = "hls"
    DASH = "dash"  # accepted on input, rejected by the orchestrator


class RenditionFormat(str, PyEnum):
    """Format filter for rendition read URLs."""
    MP4 = "mp4"
    HLS = "hls"
    BOTH = "both"


class JobState(str, PyEnum):
    """Transcoding job lifecycle as reported by the engine."""
    SUBMITTED = "SUBMITTED"
    PROGRESSING = "PROGRESSING"
    COMPLETE = "COMPLETE"
    CANCELED = "CANCELED"
    ERROR = "ERROR"


# ──────────────────────────────────────────────────────────────
# Signed handles & multipart
# ──────────────────────────────────────────────────────────────
class SignedUrl(BaseModel):
    """A time-limited credential-bearing URL. Never persisted."""
    url: str
    expires_at: datetime


class PartHandle(BaseModel):
    part_number: int = Field(..., ge=1)
    url: str
    expires_at: datetime


class MultipartSession(BaseModel):
    upload_id: str
    key: str
    parts: List[PartHandle]


class UploadedPart(BaseModel):
    part_number: int
    etag: str
    size: int


class CompletedPart(BaseModel):
    part_number: int = Field(..., ge=1)
    etag: str = Field(..., min_length=1)


class StoredObject(BaseModel):
    key: str
    last_modified: datetime
    etag: str
    size: int
    storage_class: Optional[str] = None


class ObjectListing(BaseModel):
    """One page of a bucket listing; truncation is surfaced to the caller."""
    objects: List[StoredObject]
    is_truncated: bool = False
    next_continuation_token: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Transcoding
# ──────────────────────────────────────────────────────────────
class OutputRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    format: OutputFormat
    quality: Quality


class OutputSpec(BaseModel):
    """Deterministic description of one rendition."""
    model_config = ConfigDict(frozen=True)

    format: OutputFormat
    quality: Quality
    output_key: str
    resolution: Tuple[int, int]
    bitrate: Tuple[int, int]


class TranscodeJob(BaseModel):
    job_id: str
    state: JobState


class JobStatus(BaseModel):
    state: JobState
    progress: Optional[int] = Field(None, ge=0, le=100)
    error_message: Optional[str] = None


class JobSummary(BaseModel):
    job_id: str
    state: JobState
    created_at: Optional[datetime] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


# ──────────────────────────────────────────────────────────────
# HTTP request / response shapes
# ──────────────────────────────────────────────────────────────
class UploadTargetIn(BaseModel):
    """Logical upload intent; the storage key is derived server-side."""
    entity_type: str = Field(..., min_length=1, max_length=64, examples=["user"])
    entity_id: str = Field(..., min_length=1, max_length=128, examples=["user_123"])
    media_type: str = Field(..., min_length=1, max_length=64, examples=["video"])
    file_extension: str = Field(..., min_length=1, max_length=16, examples=["mp4"])
    content_type: Optional[str] = Field(None, examples=["video/mp4"])


class MultipartUploadIn(UploadTargetIn):
    part_count: int = Field(..., examples=[5])


class UploadUrlOut(BaseModel):
    url: str
    key: str
    expires_at: datetime


class PartUrlOut(BaseModel):
    part_number: int
    url: str
    expires_at: datetime


class MultipartUploadOut(BaseModel):
    upload_id: str
    key: str
    part_urls: List[PartUrlOut]


class MultipartCompleteIn(BaseModel):
    key: str = Field(..., min_length=1)
    parts: List[CompletedPart]


class MultipartAbortIn(BaseModel):
    key: str = Field(..., min_length=1)


class ReadUrlIn(BaseModel):
    key: str = Field(..., min_length=1)
    expires_in: Optional[int] = Field(None, ge=60, le=86400, description="Seconds (default 3600)")


class ReadUrlOut(BaseModel):
    signed_url: str
    expires_at: datetime


class RenditionUrlsIn(BaseModel):
    key: str = Field(..., min_length=1)
    qualities: Optional[List[Quality]] = None
    format: Optional[RenditionFormat] = None


class RenditionUrlsOut(BaseModel):
    mp4: Optional[Dict[str, str]] = None
    hls: Optional[Dict[str, str]] = None


class TranscodeIn(BaseModel):
    input_key: str = Field(..., min_length=1)
    outputs: List[OutputRequest]


class TranscodeOut(BaseModel):
    job_id: str
    status: JobState


class TranscodeStatusOut(BaseModel):
    status: JobState
    progress: Optional[int] = None
    error_message: Optional[str] = None


class TranscodeJobItemOut(BaseModel):
    job_id: str
    status: JobState
    created_at: Optional[datetime] = None
    progress: Optional[int] = None


# ──────────────────────────────────────────────────────────────
# Upload records
# ──────────────────────────────────────────────────────────────
class UploadRecordIn(BaseModel):
    key: str = Field(..., min_length=1, examples=["d/user/user_123/avatar_1735123456789.mp4"])
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UploadRecordPatch(BaseModel):
    key: Optional[str] = Field(None, min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class UploadRecord(BaseModel):
    id: UUID
    key: str
    created_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "Environment", "Quality", "OutputFormat", "RenditionFormat", "JobState",
    "SignedUrl", "PartHandle", "MultipartSession", "UploadedPart", "CompletedPart",
    "StoredObject", "ObjectListing",
    "OutputRequest", "OutputSpec", "TranscodeJob", "JobStatus", "JobSummary",
    "UploadTargetIn", "MultipartUploadIn", "UploadUrlOut", "PartUrlOut", "MultipartUploadOut",
    "MultipartCompleteIn", "MultipartAbortIn", "ReadUrlIn", "ReadUrlOut",
    "RenditionUrlsIn", "RenditionUrlsOut", "TranscodeIn", "TranscodeOut",
    "TranscodeStatusOut", "TranscodeJobItemOut",
    "UploadRecordIn", "UploadRecordPatch", "UploadRecord",
]
