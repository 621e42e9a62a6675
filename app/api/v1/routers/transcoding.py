"""
🎞️ Media Uploads · Transcoding API (MediaConvert)
================================================

- POST /transcoding/jobs            → Submit a job (`Idempotency-Key` header optional)
- GET  /transcoding/jobs/{job_id}   → Job status (pulled from the engine)
- GET  /transcoding/jobs            → Most recent jobs (`max_results` 1..20)

No job state is stored here; the engine is the source of truth.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status

from app.api.http_utils import json_no_store, sanitize_idempotency_key
from app.core.dependencies import get_upload_facade
from app.core.limiter import rate_limit
from app.schemas.media import TranscodeIn, TranscodeJobItemOut, TranscodeOut, TranscodeStatusOut
from app.services.uploads_service import UploadFacade

router = APIRouter(prefix="/transcoding", tags=["Transcoding"])


@router.post(
    "/jobs",
    response_model=TranscodeOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a transcoding job",
)
@rate_limit("10/minute")
async def submit_transcode(
    payload: TranscodeIn,
    request: Request,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    facade: UploadFacade = Depends(get_upload_facade),
):
    job = await facade.submit_transcode(
        payload.input_key,
        payload.outputs,
        sanitize_idempotency_key(idempotency_key),
    )
    return json_no_store(TranscodeOut(job_id=job.job_id, status=job.state), status_code=status.HTTP_202_ACCEPTED)


@router.get("/jobs/{job_id}", response_model=TranscodeStatusOut, summary="Transcoding job status")
@rate_limit("120/minute")
async def get_transcode_status(
    job_id: str,
    request: Request,
    facade: UploadFacade = Depends(get_upload_facade),
):
    st = await facade.get_transcode_status(job_id)
    return json_no_store(TranscodeStatusOut(status=st.state, progress=st.progress, error_message=st.error_message))


@router.get("/jobs", summary="Most recent transcoding jobs")
@rate_limit("60/minute")
async def list_transcode_jobs(
    request: Request,
    max_results: int = Query(20, ge=1, le=20),
    facade: UploadFacade = Depends(get_upload_facade),
):
    jobs = await facade.list_transcode_jobs(max_results)
    return json_no_store(
        [
            TranscodeJobItemOut(job_id=j.job_id, status=j.state, created_at=j.created_at, progress=j.progress)
            for j in jobs
        ]
    )


__all__ = ["router"]
