from __future__ import annotations

"""
Upload facade: the single entry point used by the HTTP layer.

Composes the key deriver, the object store gateway, the delivery signer, the
transcoding orchestrator and (optionally) the upload record store. It holds no
state of its own beyond those handles, which are built once at startup.

Signer and orchestrator are optional; calling a capability that was not
configured raises `ConfigurationError`.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from app.core.exceptions import ConfigurationError, NotFound
from app.repositories.uploads import UploadRecordStoreProtocol
from app.schemas.media import (
    CompletedPart,
    Environment,
    JobStatus,
    JobSummary,
    MultipartSession,
    ObjectListing,
    OutputRequest,
    Quality,
    RenditionFormat,
    SignedUrl,
    TranscodeJob,
    UploadedPart,
    UploadRecord,
    UploadUrlOut,
)
from app.services.cdn_signing import DEFAULT_EXPIRES_IN, DeliverySigner
from app.services.transcoding import TranscodingOrchestrator
from app.utils.aws import ObjectStoreGateway
from app.utils.file_keys import derive_key, parse_environment

logger = logging.getLogger(__name__)

DEFAULT_QUALITIES = (Quality.MEDIUM,)
DEFAULT_RENDITION_FORMAT = RenditionFormat.BOTH


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadFacade:
    def __init__(
        self,
        *,
        env: str | Environment,
        gateway: ObjectStoreGateway,
        signer: Optional[DeliverySigner] = None,
        orchestrator: Optional[TranscodingOrchestrator] = None,
        records: Optional[UploadRecordStoreProtocol] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.env = parse_environment(env)
        self.gateway = gateway
        self.signer = signer
        self.orchestrator = orchestrator
        self.records = records
        self._clock = clock

    # ── Helpers ───────────────────────────────────────────────
    def _require_signer(self) -> DeliverySigner:
        if self.signer is None:
            raise ConfigurationError("CloudFront delivery signing is not configured")
        return self.signer

    def _require_orchestrator(self) -> TranscodingOrchestrator:
        if self.orchestrator is None:
            raise ConfigurationError("MediaConvert transcoding is not configured")
        return self.orchestrator

    def _require_records(self) -> UploadRecordStoreProtocol:
        if self.records is None:
            raise ConfigurationError("Upload record store is not configured")
        return self.records

    def _derive(self, entity_type: str, entity_id: str, media_type: str, extension: str) -> str:
        return derive_key(self.env, entity_type, entity_id, media_type, extension, self._clock())

    def _record(self, key: str, metadata: Dict[str, Any]) -> None:
        if self.records is not None:
            self.records.create(key=key, metadata=metadata)

    # ── Uploads ───────────────────────────────────────────────
    async def issue_upload_url(
        self,
        entity_type: str,
        entity_id: str,
        media_type: str,
        extension: str,
        content_type: Optional[str] = None,
    ) -> UploadUrlOut:
        key = self._derive(entity_type, entity_id, media_type, extension)
        signed = await self.gateway.issue_upload_url(key, content_type)
        self._record(
            key,
            {"entity_type": entity_type, "entity_id": entity_id, "media_type": media_type,
             "content_type": content_type, "upload": "single"},
        )
        logger.info("[Uploads] Upload URL issued key=%s", key)
        return UploadUrlOut(url=signed.url, key=key, expires_at=signed.expires_at)

    async def issue_multipart_urls(
        self,
        entity_type: str,
        entity_id: str,
        media_type: str,
        extension: str,
        part_count: int,
        content_type: Optional[str] = None,
    ) -> MultipartSession:
        key = self._derive(entity_type, entity_id, media_type, extension)
        session = await self.gateway.open_multipart_session(key, part_count, content_type)
        self._record(
            key,
            {"entity_type": entity_type, "entity_id": entity_id, "media_type": media_type,
             "content_type": content_type, "upload": "multipart", "upload_id": session.upload_id},
        )
        return session

    async def list_uploaded_parts(self, key: str, upload_id: str) -> List[UploadedPart]:
        return await self.gateway.list_uploaded_parts(key, upload_id)

    async def issue_complete_url(
        self,
        key: str,
        upload_id: str,
        parts: Iterable[CompletedPart | Dict[str, Any]],
    ) -> SignedUrl:
        return await self.gateway.issue_complete_url(key, upload_id, parts)

    async def issue_abort_url(self, key: str, upload_id: str) -> SignedUrl:
        return await self.gateway.issue_abort_url(key, upload_id)

    async def list_stored_objects(
        self,
        prefix: Optional[str] = None,
        max_keys: int = 1000,
        continuation_token: Optional[str] = None,
    ) -> ObjectListing:
        return await self.gateway.list_objects(prefix, max_keys, continuation_token)

    # ── Delivery ──────────────────────────────────────────────
    async def issue_read_url(self, key: str, expires_in: Optional[int] = None) -> SignedUrl:
        return self._require_signer().sign_url(key, DEFAULT_EXPIRES_IN if expires_in is None else expires_in)

    async def issue_rendition_urls(
        self,
        key: str,
        qualities: Optional[Iterable[Quality | str]] = None,
        format_filter: Optional[RenditionFormat | str] = None,
        expires_in: int = DEFAULT_EXPIRES_IN,
    ) -> Dict[str, Dict[str, SignedUrl]]:
        qs = list(qualities) if qualities else list(DEFAULT_QUALITIES)
        return self._require_signer().sign_rendition_urls(
            key, qs, format_filter or DEFAULT_RENDITION_FORMAT, expires_in
        )

    # ── Transcoding ───────────────────────────────────────────
    async def submit_transcode(
        self,
        input_key: str,
        outputs: Iterable[OutputRequest | Dict[str, Any]],
        idempotency_token: Optional[str] = None,
    ) -> TranscodeJob:
        return await self._require_orchestrator().submit(input_key, outputs, idempotency_token)

    async def get_transcode_status(self, job_id: str) -> JobStatus:
        return await self._require_orchestrator().get_status(job_id)

    async def list_transcode_jobs(self, max_results: int = 20) -> List[JobSummary]:
        return await self._require_orchestrator().list_recent(max_results)

    # ── Upload records ────────────────────────────────────────
    def create_record(self, key: str, metadata: Optional[Dict[str, Any]] = None) -> UploadRecord:
        return self._require_records().create(key=key, metadata=metadata)

    def list_records(self, *, limit: int = 100, offset: int = 0) -> List[UploadRecord]:
        return self._require_records().list(limit=limit, offset=offset)

    def get_record(self, record_id: UUID) -> UploadRecord:
        rec = self._require_records().get(record_id)
        if rec is None:
            raise NotFound("Upload record not found", details={"id": str(record_id)})
        return rec

    def update_record(
        self,
        record_id: UUID,
        *,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UploadRecord:
        rec = self._require_records().update(record_id, key=key, metadata=metadata)
        if rec is None:
            raise NotFound("Upload record not found", details={"id": str(record_id)})
        return rec

    def delete_record(self, record_id: UUID) -> None:
        if not self._require_records().delete(record_id):
            raise NotFound("Upload record not found", details={"id": str(record_id)})


__all__ = ["UploadFacade", "DEFAULT_QUALITIES", "DEFAULT_RENDITION_FORMAT"]
