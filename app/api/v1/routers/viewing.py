"""
🎬 Media Uploads · Viewing API (CloudFront signed URLs)
======================================================

- POST /viewing/signed-url       → Signed read URL for an original (`expires_in` 60..86400 s)
- POST /viewing/rendition-urls   → Signed read URLs for transcoded renditions

Defaults for renditions: `qualities=[medium]`, `format=both`.
"""

from fastapi import APIRouter, Depends, Request

from app.api.http_utils import json_no_store
from app.core.dependencies import get_upload_facade
from app.core.limiter import rate_limit
from app.schemas.media import ReadUrlIn, ReadUrlOut, RenditionUrlsIn, RenditionUrlsOut
from app.services.uploads_service import UploadFacade

router = APIRouter(prefix="/viewing", tags=["Viewing"])


@router.post("/signed-url", response_model=ReadUrlOut, summary="Signed CloudFront URL for a stored object")
@rate_limit("60/minute")
async def issue_read_url(
    payload: ReadUrlIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    signed = await facade.issue_read_url(payload.key, payload.expires_in)
    return json_no_store(ReadUrlOut(signed_url=signed.url, expires_at=signed.expires_at))


@router.post("/rendition-urls", response_model=RenditionUrlsOut, summary="Signed CloudFront URLs for renditions")
@rate_limit("60/minute")
async def issue_rendition_urls(
    payload: RenditionUrlsIn,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    signed = await facade.issue_rendition_urls(payload.key, payload.qualities, payload.format)
    out = RenditionUrlsOut(**{fmt: {q: s.url for q, s in by_q.items()} for fmt, by_q in signed.items()})
    return json_no_store(out)


__all__ = ["router"]
