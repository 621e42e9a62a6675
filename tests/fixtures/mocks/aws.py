from __future__ import annotations

"""
In-process fakes for the boto3 clients used by the media services
=================================================================

FakeS3Client           : generate_presigned_url / create_multipart_upload /
                         abort_multipart_upload / list_parts / list_objects_v2
                         plus `put_object` / `upload_part` to simulate client writes
FakeMediaConvertClient : create_job / get_job / list_jobs

Design notes
------------
- Same keyword-only call shapes as botocore clients.
- Failures are injected by queueing exceptions (`queue_error`) or via flags;
  errors are real `botocore.exceptions.ClientError`s so the production error
  mapping is exercised.
- Every call is recorded in `calls` for assertions.
"""

import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from botocore.exceptions import ClientError


def client_error(code: str, status: int = 400, operation: str = "Operation", message: str = "") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message or code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class _Recorder:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self._errors: Dict[str, List[BaseException]] = {}
        self._lock = threading.Lock()

    def queue_error(self, method: str, *errors: BaseException) -> None:
        """Raise these (in order) on the next calls to `method`."""
        with self._lock:
            self._errors.setdefault(method, []).extend(errors)

    def _record(self, method: str, **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((method, kwargs))
            pending = self._errors.get(method)
            err = pending.pop(0) if pending else None
        if err is not None:
            raise err

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)


class FakeS3Client(_Recorder):
    def __init__(self) -> None:
        super().__init__()
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self.aborted: List[str] = []
        self.fail_part_numbers: set[int] = set()
        self.create_returns_no_id = False
        self._ids = itertools.count(1)

    # ── Presigning ─────────────────────────────────────────────
    def generate_presigned_url(self, ClientMethod: str, Params: Dict[str, Any], ExpiresIn: int = 3600, HttpMethod: Optional[str] = None) -> str:
        self._record("generate_presigned_url", ClientMethod=ClientMethod, Params=Params, ExpiresIn=ExpiresIn, HttpMethod=HttpMethod)
        if ClientMethod == "upload_part" and Params.get("PartNumber") in self.fail_part_numbers:
            raise client_error("AccessDenied", 403, "GeneratePresignedUrl")
        query = {"X-Amz-Expires": ExpiresIn, "x-op": ClientMethod}
        if "UploadId" in Params:
            query["uploadId"] = Params["UploadId"]
        if "PartNumber" in Params:
            query["partNumber"] = Params["PartNumber"]
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?{urlencode(query)}"

    # ── Multipart ──────────────────────────────────────────────
    def create_multipart_upload(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_multipart_upload", **kwargs)
        if self.create_returns_no_id:
            return {"Bucket": kwargs["Bucket"], "Key": kwargs["Key"]}
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = {"Key": kwargs["Key"], "Parts": {}}
        return {"Bucket": kwargs["Bucket"], "Key": kwargs["Key"], "UploadId": upload_id}

    def abort_multipart_upload(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("abort_multipart_upload", **kwargs)
        self.uploads.pop(kwargs["UploadId"], None)
        self.aborted.append(kwargs["UploadId"])
        return {}

    def upload_part(self, *, Key: str, UploadId: str, PartNumber: int, Body: bytes = b"x") -> str:
        """Test helper: simulate a client PUT to a part URL."""
        etag = f'"etag-{PartNumber}"'
        self.uploads[UploadId]["Parts"][PartNumber] = {"PartNumber": PartNumber, "ETag": etag, "Size": len(Body)}
        return etag

    def list_parts(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("list_parts", **kwargs)
        up = self.uploads.get(kwargs["UploadId"])
        if up is None or up["Key"] != kwargs["Key"]:
            raise client_error("NoSuchUpload", 404, "ListParts")
        parts = [up["Parts"][n] for n in sorted(up["Parts"])]
        marker = kwargs.get("PartNumberMarker") or 0
        parts = [p for p in parts if p["PartNumber"] > marker]
        page, rest = parts[:2], parts[2:]  # tiny pages so pagination is exercised
        resp: Dict[str, Any] = {"Parts": page, "IsTruncated": bool(rest)}
        if rest:
            resp["NextPartNumberMarker"] = page[-1]["PartNumber"]
        return resp

    # ── Objects ────────────────────────────────────────────────
    def put_object(self, *, Key: str, Body: bytes = b"", StorageClass: str = "STANDARD", **_: Any) -> Dict[str, Any]:
        """Test helper: simulate a client PUT to an upload URL."""
        self.objects[Key] = {
            "Key": Key,
            "LastModified": datetime.now(timezone.utc),
            "ETag": f'"{len(Body):032x}"',
            "Size": len(Body),
            "StorageClass": StorageClass,
        }
        return {"ETag": self.objects[Key]["ETag"]}

    def list_objects_v2(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("list_objects_v2", **kwargs)
        prefix = kwargs.get("Prefix", "")
        keys = sorted(k for k in self.objects if k.startswith(prefix))
        start = int(kwargs.get("ContinuationToken") or 0)
        max_keys = kwargs["MaxKeys"]
        page = keys[start: start + max_keys]
        resp: Dict[str, Any] = {"KeyCount": len(page), "IsTruncated": start + max_keys < len(keys)}
        if page:
            resp["Contents"] = [dict(self.objects[k]) for k in page]
        if resp["IsTruncated"]:
            resp["NextContinuationToken"] = str(start + max_keys)
        return resp


class FakeMediaConvertClient(_Recorder):
    def __init__(self) -> None:
        super().__init__()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self._t0 = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def add_job(self, status: str, *, progress: Optional[int] = None, error: Optional[str] = None) -> str:
        n = next(self._ids)
        job_id = f"1700000000000-job{n}"
        job: Dict[str, Any] = {"Id": job_id, "Status": status, "CreatedAt": self._t0 + timedelta(minutes=n)}
        if progress is not None:
            job["JobPercentComplete"] = progress
        if error is not None:
            job["ErrorMessage"] = error
        self.jobs[job_id] = job
        return job_id

    def create_job(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("create_job", **kwargs)
        job_id = self.add_job("SUBMITTED")
        return {"Job": dict(self.jobs[job_id])}

    def get_job(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("get_job", **kwargs)
        job = self.jobs.get(kwargs["Id"])
        if job is None:
            raise client_error("NotFoundException", 404, "GetJob")
        return {"Job": dict(job)}

    def list_jobs(self, **kwargs: Any) -> Dict[str, Any]:
        self._record("list_jobs", **kwargs)
        jobs = sorted(self.jobs.values(), key=lambda j: j["CreatedAt"], reverse=kwargs.get("Order") == "DESCENDING")
        return {"Jobs": [dict(j) for j in jobs[: kwargs["MaxResults"]]]}


__all__ = ["client_error", "FakeS3Client", "FakeMediaConvertClient"]
