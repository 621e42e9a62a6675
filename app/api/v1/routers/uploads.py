"""
📦 Media Uploads · Uploads API (single & multipart, direct-to-S3)
================================================================

Routes under `/api/v1/uploads`. The service never touches file bytes: it
derives the storage key, issues presigned URLs and proxies store metadata.

Routes
------
- POST   /uploads/upload-url                          → Presigned PUT (key derived server-side)
- POST   /uploads/multipart                           → Create multipart upload + one URL per part
- GET    /uploads/multipart/{upload_id}/parts?key=    → Parts already stored
- POST   /uploads/multipart/{upload_id}/complete-url  → Presigned complete (client POSTs the XML)
- POST   /uploads/multipart/{upload_id}/abort-url     → Presigned abort
- GET    /uploads/objects                             → One page of stored objects
- POST   /uploads/records                             → Create upload record
- GET    /uploads/records                             → List upload records
- GET    /uploads/records/{record_id}                 → Get upload record
- PATCH  /uploads/records/{record_id}                 → Update upload record
- DELETE /uploads/records/{record_id}                 → Delete upload record

Operations
----------
- **SlowAPI** per-route rate limits; responses are `JSONResponse` for clean header injection.
- Presign responses carry `Cache-Control: no-store`.
- Errors render as problem+json (see `app.core.exception_handlers`).
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.http_utils import json_no_store
from app.core.dependencies import get_upload_facade
from app.core.limiter import rate_limit
from app.schemas.media import (
    MultipartAbortIn,
    MultipartCompleteIn,
    MultipartUploadIn,
    MultipartUploadOut,
    ObjectListing,
    PartUrlOut,
    SignedUrl,
    UploadRecord,
    UploadRecordIn,
    UploadRecordPatch,
    UploadTargetIn,
    UploadUrlOut,
)
from app.services.uploads_service import UploadFacade

router = APIRouter(prefix="/uploads", tags=["Uploads"])


# ─────────────────────────────────────────────────────────────────────────────
# ⬆️ Single-part
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/upload-url", response_model=UploadUrlOut, summary="Presigned PUT for a single-part upload")
@rate_limit("30/minute")
async def issue_upload_url(
    payload: UploadTargetIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    out = await facade.issue_upload_url(
        payload.entity_type,
        payload.entity_id,
        payload.media_type,
        payload.file_extension,
        payload.content_type,
    )
    return json_no_store(out)


# ─────────────────────────────────────────────────────────────────────────────
# 🧩 Multipart
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/multipart", response_model=MultipartUploadOut, summary="Create a multipart upload with part URLs")
@rate_limit("10/minute")
async def issue_multipart_urls(
    payload: MultipartUploadIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    session = await facade.issue_multipart_urls(
        payload.entity_type,
        payload.entity_id,
        payload.media_type,
        payload.file_extension,
        payload.part_count,
        payload.content_type,
    )
    out = MultipartUploadOut(
        upload_id=session.upload_id,
        key=session.key,
        part_urls=[PartUrlOut(part_number=p.part_number, url=p.url, expires_at=p.expires_at) for p in session.parts],
    )
    return json_no_store(out)


@router.get("/multipart/{upload_id}/parts", summary="List parts already uploaded")
@rate_limit("60/minute")
async def list_uploaded_parts(
    upload_id: str,
    request: Request,
    key: str = Query(..., min_length=1),
    facade: UploadFacade = Depends(get_upload_facade),
):
    parts = await facade.list_uploaded_parts(key, upload_id)
    return json_no_store({"upload_id": upload_id, "key": key, "parts": parts})


@router.post("/multipart/{upload_id}/complete-url", response_model=SignedUrl, summary="Presigned complete URL")
@rate_limit("30/minute")
async def issue_complete_url(
    upload_id: str,
    payload: MultipartCompleteIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(await facade.issue_complete_url(payload.key, upload_id, payload.parts))


@router.post("/multipart/{upload_id}/abort-url", response_model=SignedUrl, summary="Presigned abort URL")
@rate_limit("30/minute")
async def issue_abort_url(
    upload_id: str,
    payload: MultipartAbortIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(await facade.issue_abort_url(payload.key, upload_id))


# ─────────────────────────────────────────────────────────────────────────────
# 🔎 Listing
# ─────────────────────────────────────────────────────────────────────────────
@router.get("/objects", response_model=ObjectListing, summary="List stored objects (single page)")
@rate_limit("60/minute")
async def list_stored_objects(
    request: Request,
    prefix: Optional[str] = Query(None),
    max_keys: int = Query(1000, ge=1, le=1000),
    continuation_token: Optional[str] = Query(None),
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(await facade.list_stored_objects(prefix, max_keys, continuation_token))


# ─────────────────────────────────────────────────────────────────────────────
# 🗂️ Upload records
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/records", response_model=UploadRecord, status_code=status.HTTP_201_CREATED, summary="Create upload record")
@rate_limit("30/minute")
async def create_record(
    payload: UploadRecordIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    rec = facade.create_record(payload.key, payload.metadata)
    return json_no_store(rec, status_code=status.HTTP_201_CREATED)


@router.get("/records", summary="List upload records (newest first)")
@rate_limit("60/minute")
async def list_records(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(facade.list_records(limit=limit, offset=offset))


@router.get("/records/{record_id}", response_model=UploadRecord, summary="Get upload record")
@rate_limit("60/minute")
async def get_record(
    record_id: UUID,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(facade.get_record(record_id))


@router.patch("/records/{record_id}", response_model=UploadRecord, summary="Update upload record")
@rate_limit("30/minute")
async def update_record(
    record_id: UUID,
    payload: UploadRecordPatch,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    return json_no_store(facade.update_record(record_id, key=payload.key, metadata=payload.metadata))


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete upload record")
@rate_limit("30/minute")
async def delete_record(
    record_id: UUID,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    facade.delete_record(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
