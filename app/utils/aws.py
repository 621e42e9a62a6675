# app/utils/aws.py
from __future__ import annotations

"""
🧊 Media Uploads • Object Store Gateway (S3)
===========================================

Thin async façade over a shared boto3 S3 client, used by the upload facade
for direct-to-S3 uploads:

- Presigned single-part PUT
- Multipart sessions: create + one presigned `upload_part` URL per part
- Listing uploaded parts of an open session
- Presigned complete / abort URLs (the client performs the actual call)
- Single-page bucket listing (truncation is surfaced, never followed)

🎯 Behaviour
------------
- Presigned URLs expire after `URL_EXPIRES_IN` (1 hour); `expires_at` is
  computed from each URL's own issuance time.
- Part URLs are issued concurrently, bounded by a semaphore, and returned
  sorted by part number.
- A multipart session is all-or-nothing: if any part URL fails the backend
  upload is aborted and the call raises `UpstreamError`.
  Cancellation after the upload is created also aborts it.
- Reads (`list_uploaded_parts`, `list_objects`) are retried on transient
  failures; writes and URL issuance are not.
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from app.core.exceptions import BackendUnavailable, InvalidArgument, UpstreamError
from app.schemas.media import (
    CompletedPart,
    MultipartSession,
    ObjectListing,
    PartHandle,
    SignedUrl,
    StoredObject,
    UploadedPart,
)
from app.utils.upstream import UpstreamPolicy, call_once, call_read, map_upstream_error

logger = logging.getLogger(__name__)

URL_EXPIRES_IN = 3600
MAX_PARTS = 10_000
MAX_LIST_KEYS = 1000


# ─────────────────────────────────────────────────────────────────────────────
# 🧰 Key validation
# ─────────────────────────────────────────────────────────────────────────────

# Keep keys strict: readable + safe across tools, CDNs, and logs.
_KEY_ALLOWED_RE = re.compile(r"[A-Za-z0-9._\-/+=@() ]+")


def normalize_key(key: str) -> str:
    """
    Normalize and validate S3 object keys.

    Steps
    -----
    1) Coerce to str, strip whitespace
    2) Remove leading '/'
    3) Collapse '//' runs
    4) Reject path traversal ('..') and disallowed characters

    Raises
    ------
    InvalidArgument
        If key is empty or contains unsafe characters.
    """
    k = str(key or "").strip().lstrip("/")
    k = re.sub(r"/{2,}", "/", k)
    if not k:
        raise InvalidArgument("Invalid storage key: empty", details={"field": "key"})
    if ".." in k:
        raise InvalidArgument("Invalid storage key: path traversal detected", details={"field": "key"})
    if not _KEY_ALLOWED_RE.fullmatch(k):
        raise InvalidArgument("Invalid storage key: contains forbidden characters", details={"field": "key"})
    return k


def _upload_id(upload_id: str) -> str:
    u = str(upload_id or "").strip()
    if not u:
        raise InvalidArgument("upload_id must not be empty", details={"field": "upload_id"})
    return u


def _expires_at(issued_at: datetime, expires_in: int = URL_EXPIRES_IN) -> datetime:
    return issued_at + timedelta(seconds=expires_in)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_completed_parts(parts: Iterable[CompletedPart | Dict[str, Any]]) -> List[CompletedPart]:
    items: List[CompletedPart] = []
    for p in parts or []:
        if isinstance(p, CompletedPart):
            items.append(p)
            continue
        try:
            items.append(CompletedPart.model_validate(p))
        except ValueError as e:
            raise InvalidArgument("Invalid part entry", details={"part": p}) from e
    if not items:
        raise InvalidArgument("parts must not be empty", details={"field": "parts"})
    numbers = [p.part_number for p in items]
    dupes = sorted({n for n in numbers if numbers.count(n) > 1})
    if dupes:
        raise InvalidArgument("Duplicate part numbers", details={"duplicates": dupes})
    if any(not p.etag.strip() for p in items):
        raise InvalidArgument("Every part needs a non-empty ETag", details={"field": "etag"})
    return sorted(items, key=lambda p: p.part_number)


# ─────────────────────────────────────────────────────────────────────────────
# 📦 Gateway
# ─────────────────────────────────────────────────────────────────────────────

class ObjectStoreGateway:
    """
    Async wrapper around a shared boto3 S3 client for one bucket.

    Parameters
    ----------
    s3_client : botocore client
        Process-wide client built by `app.core.clients.init_media_clients`.
    bucket : str
        Uploads bucket.
    policy : UpstreamPolicy
        Timeout/retry policy for outbound calls.
    concurrency : int
        Upper bound on concurrently issued part URLs.
    """

    def __init__(
        self,
        s3_client: Any,
        bucket: str,
        *,
        policy: Optional[UpstreamPolicy] = None,
        concurrency: int = 16,
    ) -> None:
        if not bucket:
            raise InvalidArgument("bucket must not be empty")
        self._s3 = s3_client
        self.bucket = bucket
        self._policy = policy or UpstreamPolicy()
        self._concurrency = max(1, int(concurrency))

    # ────────────────────────────────────────────────────────────────────────
    # 🔐 Signed URL helpers
    # ────────────────────────────────────────────────────────────────────────

    async def _presign(self, client_method: str, params: Dict[str, Any], http_method: Optional[str] = None) -> SignedUrl:
        issued_at = _utcnow()
        kwargs: Dict[str, Any] = {"ClientMethod": client_method, "Params": params, "ExpiresIn": URL_EXPIRES_IN}
        if http_method:
            kwargs["HttpMethod"] = http_method
        url = await call_once(
            self._s3.generate_presigned_url,
            policy=self._policy,
            operation=f"presign_{client_method}",
            **kwargs,
        )
        return SignedUrl(url=url, expires_at=_expires_at(issued_at))

    async def issue_upload_url(self, key: str, content_type: Optional[str] = None) -> SignedUrl:
        """Presigned single-part PUT. No existence check is made."""
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": normalize_key(key)}
        if content_type:
            params["ContentType"] = content_type
        return await self._presign("put_object", params, "PUT")

    async def open_multipart_session(
        self,
        key: str,
        part_count: int,
        content_type: Optional[str] = None,
    ) -> MultipartSession:
        """
        Create a multipart upload and issue exactly `part_count` part URLs.

        Raises
        ------
        InvalidArgument     part_count outside 1..10000 (before any backend call)
        BackendUnavailable  the store did not allocate an upload id
        UpstreamError       a part URL could not be issued (upload is aborted)
        """
        if isinstance(part_count, bool) or not isinstance(part_count, int) or not 1 <= part_count <= MAX_PARTS:
            raise InvalidArgument(
                f"part_count must be between 1 and {MAX_PARTS}",
                details={"part_count": part_count},
            )
        k = normalize_key(key)

        create: Dict[str, Any] = {"Bucket": self.bucket, "Key": k}
        if content_type:
            create["ContentType"] = content_type
        try:
            resp = await call_once(
                self._s3.create_multipart_upload,
                policy=self._policy,
                operation="create_multipart_upload",
                **create,
            )
        except UpstreamError as e:
            raise BackendUnavailable(
                "Failed to initiate multipart upload",
                details={"key": k, "cause": e.code},
            ) from e
        upload_id = (resp or {}).get("UploadId")
        if not upload_id:
            raise BackendUnavailable("Failed to initiate multipart upload: no upload id returned", details={"key": k})

        sem = asyncio.Semaphore(self._concurrency)

        async def _one(part_number: int) -> PartHandle:
            async with sem:
                signed = await self._presign(
                    "upload_part",
                    {"Bucket": self.bucket, "Key": k, "UploadId": upload_id, "PartNumber": part_number},
                    "PUT",
                )
            return PartHandle(part_number=part_number, url=signed.url, expires_at=signed.expires_at)

        tasks = [asyncio.create_task(_one(n)) for n in range(1, part_count + 1)]
        try:
            parts = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for t in tasks:
                t.cancel()
            await asyncio.shield(self._abort_after_failure(k, upload_id))
            raise
        except Exception as e:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._abort_after_failure(k, upload_id)
            raise UpstreamError(
                "Failed to issue part URLs; multipart upload aborted",
                details={"key": k, "upload_id": upload_id, "cause": type(e).__name__},
            ) from e

        logger.info("[S3] Multipart session opened key=%s parts=%d", k, part_count)
        return MultipartSession(
            upload_id=upload_id,
            key=k,
            parts=sorted(parts, key=lambda p: p.part_number),
        )

    async def _abort_after_failure(self, key: str, upload_id: str) -> None:
        try:
            await call_once(
                self._s3.abort_multipart_upload,
                policy=self._policy,
                operation="abort_multipart_upload",
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
            )
        except UpstreamError as e:
            # The original failure is what the caller sees; record the leak.
            logger.error("[S3] abort_multipart_upload failed key=%s upload_id=%s: %s", key, upload_id, e)

    async def list_uploaded_parts(self, key: str, upload_id: str) -> List[UploadedPart]:
        """Parts already stored for an open session (empty when none). Follows part pagination."""
        k = normalize_key(key)
        u = _upload_id(upload_id)
        out: List[UploadedPart] = []
        marker: Optional[int] = None
        while True:
            params: Dict[str, Any] = {"Bucket": self.bucket, "Key": k, "UploadId": u}
            if marker is not None:
                params["PartNumberMarker"] = marker
            resp = await call_read(
                self._s3.list_parts,
                policy=self._policy,
                operation="list_parts",
                not_found_codes=("NoSuchUpload",),
                **params,
            )
            for p in (resp or {}).get("Parts") or []:
                out.append(
                    UploadedPart(
                        part_number=int(p["PartNumber"]),
                        etag=str(p.get("ETag") or ""),
                        size=int(p.get("Size") or 0),
                    )
                )
            if not (resp or {}).get("IsTruncated"):
                break
            marker = (resp or {}).get("NextPartNumberMarker")
            if marker is None:
                break
        return sorted(out, key=lambda p: p.part_number)

    async def issue_complete_url(
        self,
        key: str,
        upload_id: str,
        parts: Iterable[CompletedPart | Dict[str, Any]],
    ) -> SignedUrl:
        """Presigned POST for `complete_multipart_upload`; parts are sorted ascending."""
        k = normalize_key(key)
        u = _upload_id(upload_id)
        items = _validate_completed_parts(parts)
        return await self._presign(
            "complete_multipart_upload",
            {
                "Bucket": self.bucket,
                "Key": k,
                "UploadId": u,
                "MultipartUpload": {"Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in items]},
            },
            "POST",
        )

    async def issue_abort_url(self, key: str, upload_id: str) -> SignedUrl:
        """Presigned DELETE for `abort_multipart_upload`."""
        return await self._presign(
            "abort_multipart_upload",
            {"Bucket": self.bucket, "Key": normalize_key(key), "UploadId": _upload_id(upload_id)},
            "DELETE",
        )

    # ────────────────────────────────────────────────────────────────────────
    # 🔎 Listing
    # ────────────────────────────────────────────────────────────────────────

    async def list_objects(
        self,
        prefix: Optional[str] = None,
        max_keys: int = MAX_LIST_KEYS,
        continuation_token: Optional[str] = None,
    ) -> ObjectListing:
        """One page of objects. The caller re-queries with the continuation token."""
        if isinstance(max_keys, bool) or not isinstance(max_keys, int) or not 1 <= max_keys <= MAX_LIST_KEYS:
            raise InvalidArgument(
                f"max_keys must be between 1 and {MAX_LIST_KEYS}",
                details={"max_keys": max_keys},
            )
        params: Dict[str, Any] = {"Bucket": self.bucket, "MaxKeys": max_keys}
        if prefix:
            params["Prefix"] = str(prefix).lstrip("/")
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        resp = await call_read(
            self._s3.list_objects_v2,
            policy=self._policy,
            operation="list_objects_v2",
            **params,
        ) or {}
        try:
            objects = [
                StoredObject(
                    key=o["Key"],
                    last_modified=o["LastModified"],
                    etag=str(o.get("ETag") or ""),
                    size=int(o.get("Size") or 0),
                    storage_class=o.get("StorageClass"),
                )
                for o in resp.get("Contents") or []
            ]
        except (KeyError, ValueError) as e:
            raise map_upstream_error(e, operation="list_objects_v2") from e
        return ObjectListing(
            objects=objects,
            is_truncated=bool(resp.get("IsTruncated")),
            next_continuation_token=resp.get("NextContinuationToken"),
        )

    def __repr__(self) -> str:  # pragma: no cover
        return f"ObjectStoreGateway(bucket={self.bucket}, concurrency={self._concurrency})"


__all__ = ["ObjectStoreGateway", "normalize_key", "URL_EXPIRES_IN", "MAX_PARTS", "MAX_LIST_KEYS"]
