# tests/test_storage/test_object_store_gateway.py

import asyncio
import time
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import BackendUnavailable, InvalidArgument, NotFound, UpstreamError
from app.utils.aws import ObjectStoreGateway
from tests.fixtures.app import BUCKET
from tests.fixtures.mocks.aws import client_error

KEY = "t/user/u1/video_1735122656789.mp4"


# ─────────────────────────────────────────────────────────────
# Single-part
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_issue_upload_url_presigns_put(gateway, fake_s3):
    before = datetime.now(timezone.utc)
    signed = await gateway.issue_upload_url(KEY, "video/mp4")

    method, call = fake_s3.calls[-1]
    assert method == "generate_presigned_url"
    assert call["ClientMethod"] == "put_object"
    assert call["HttpMethod"] == "PUT"
    assert call["ExpiresIn"] == 3600
    assert call["Params"] == {"Bucket": BUCKET, "Key": KEY, "ContentType": "video/mp4"}
    assert KEY in signed.url
    assert before + timedelta(seconds=3600) <= signed.expires_at <= datetime.now(timezone.utc) + timedelta(seconds=3600)


@pytest.mark.anyio
@pytest.mark.parametrize("bad", ["", "   ", "a/../b", "bad\\key"])
async def test_unsafe_keys_rejected(gateway, bad):
    with pytest.raises(InvalidArgument):
        await gateway.issue_upload_url(bad)


# ─────────────────────────────────────────────────────────────
# Multipart
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_multipart_session_has_contiguous_parts(gateway, fake_s3):
    session = await gateway.open_multipart_session(KEY, 5, "video/mp4")

    assert session.key == KEY
    assert session.upload_id == "upload-1"
    assert [p.part_number for p in session.parts] == [1, 2, 3, 4, 5]
    assert all(f"partNumber={p.part_number}" in p.url for p in session.parts)
    assert all("uploadId=upload-1" in p.url for p in session.parts)
    assert fake_s3.count("create_multipart_upload") == 1
    assert fake_s3.calls[0][1]["ContentType"] == "video/mp4"


@pytest.mark.anyio
async def test_multipart_parts_sorted_even_when_issued_out_of_order(fake_s3, policy):
    original = fake_s3.generate_presigned_url

    def slow_low_parts(**kwargs):
        # Lower part numbers finish last.
        n = kwargs["Params"].get("PartNumber")
        if n:
            time.sleep(0.002 * (10 - n))
        return original(**kwargs)

    fake_s3.generate_presigned_url = slow_low_parts
    gw = ObjectStoreGateway(fake_s3, BUCKET, policy=policy, concurrency=10)
    session = await gw.open_multipart_session(KEY, 9)
    assert [p.part_number for p in session.parts] == list(range(1, 10))


@pytest.mark.anyio
@pytest.mark.parametrize("count", [0, -1, 10_001])
async def test_part_count_validated_before_backend_call(gateway, fake_s3, count):
    with pytest.raises(InvalidArgument):
        await gateway.open_multipart_session(KEY, count)
    assert fake_s3.calls == []


@pytest.mark.anyio
async def test_create_failure_is_backend_unavailable(gateway, fake_s3):
    fake_s3.queue_error("create_multipart_upload", client_error("InternalError", 500))
    with pytest.raises(BackendUnavailable):
        await gateway.open_multipart_session(KEY, 2)


@pytest.mark.anyio
async def test_missing_upload_id_is_backend_unavailable(gateway, fake_s3):
    fake_s3.create_returns_no_id = True
    with pytest.raises(BackendUnavailable):
        await gateway.open_multipart_session(KEY, 2)
    assert fake_s3.count("generate_presigned_url") == 0


@pytest.mark.anyio
async def test_part_failure_aborts_whole_session(gateway, fake_s3):
    fake_s3.fail_part_numbers = {3}
    with pytest.raises(UpstreamError) as ei:
        await gateway.open_multipart_session(KEY, 4)

    assert not isinstance(ei.value, BackendUnavailable)
    assert fake_s3.aborted == ["upload-1"]
    assert "upload-1" not in fake_s3.uploads


@pytest.mark.anyio
async def test_part_failure_still_raises_when_abort_fails(gateway, fake_s3):
    fake_s3.fail_part_numbers = {1}
    fake_s3.queue_error("abort_multipart_upload", client_error("AccessDenied", 403))
    with pytest.raises(UpstreamError) as ei:
        await gateway.open_multipart_session(KEY, 2)
    assert ei.value.details["upload_id"] == "upload-1"


@pytest.mark.anyio
async def test_list_uploaded_parts_follows_pagination(gateway, fake_s3):
    session = await gateway.open_multipart_session(KEY, 5)
    assert await gateway.list_uploaded_parts(KEY, session.upload_id) == []

    for n in (4, 1, 2, 5, 3):
        fake_s3.upload_part(Key=KEY, UploadId=session.upload_id, PartNumber=n, Body=b"abc")
    parts = await gateway.list_uploaded_parts(KEY, session.upload_id)

    assert [p.part_number for p in parts] == [1, 2, 3, 4, 5]
    assert parts[0].etag == '"etag-1"'
    assert parts[0].size == 3
    assert fake_s3.count("list_parts") == 4  # 1 empty + 3 pages


@pytest.mark.anyio
async def test_list_uploaded_parts_unknown_upload_is_not_found(gateway):
    with pytest.raises(NotFound):
        await gateway.list_uploaded_parts(KEY, "nope")


@pytest.mark.anyio
async def test_complete_url_sorts_parts(gateway, fake_s3):
    signed = await gateway.issue_complete_url(
        KEY,
        "upload-9",
        [{"part_number": 2, "etag": '"b"'}, {"part_number": 1, "etag": '"a"'}],
    )
    _, call = fake_s3.calls[-1]
    assert call["ClientMethod"] == "complete_multipart_upload"
    assert call["HttpMethod"] == "POST"
    assert call["Params"]["MultipartUpload"]["Parts"] == [
        {"PartNumber": 1, "ETag": '"a"'},
        {"PartNumber": 2, "ETag": '"b"'},
    ]
    assert "uploadId=upload-9" in signed.url


@pytest.mark.anyio
@pytest.mark.parametrize(
    "parts",
    [
        [],
        [{"part_number": 1, "etag": "a"}, {"part_number": 1, "etag": "b"}],
        [{"part_number": 0, "etag": "a"}],
        [{"part_number": 1, "etag": "  "}],
        [{"part_number": 1}],
    ],
)
async def test_complete_url_rejects_bad_parts(gateway, fake_s3, parts):
    with pytest.raises(InvalidArgument):
        await gateway.issue_complete_url(KEY, "upload-9", parts)
    assert fake_s3.calls == []


@pytest.mark.anyio
async def test_abort_url_presigns_delete(gateway, fake_s3):
    await gateway.issue_abort_url(KEY, "upload-9")
    _, call = fake_s3.calls[-1]
    assert call["ClientMethod"] == "abort_multipart_upload"
    assert call["HttpMethod"] == "DELETE"
    assert call["Params"]["UploadId"] == "upload-9"


@pytest.mark.anyio
async def test_abort_url_requires_upload_id(gateway):
    with pytest.raises(InvalidArgument):
        await gateway.issue_abort_url(KEY, " ")


# ─────────────────────────────────────────────────────────────
# Listing
# ─────────────────────────────────────────────────────────────
@pytest.mark.anyio
async def test_list_objects_single_page_surfaces_truncation(gateway, fake_s3):
    for i in range(3):
        fake_s3.put_object(Key=f"t/user/u1/img_{i}.jpg", Body=b"x" * i)
    fake_s3.put_object(Key="t/other/o1/img.jpg")

    page = await gateway.list_objects(prefix="t/user/", max_keys=2)
    assert [o.key for o in page.objects] == ["t/user/u1/img_0.jpg", "t/user/u1/img_1.jpg"]
    assert page.is_truncated is True
    assert page.next_continuation_token

    rest = await gateway.list_objects(prefix="t/user/", max_keys=2, continuation_token=page.next_continuation_token)
    assert [o.key for o in rest.objects] == ["t/user/u1/img_2.jpg"]
    assert rest.is_truncated is False
    assert rest.objects[0].size == 2
    assert rest.objects[0].storage_class == "STANDARD"


@pytest.mark.anyio
async def test_list_objects_empty_bucket(gateway):
    page = await gateway.list_objects()
    assert page.objects == []
    assert page.is_truncated is False


@pytest.mark.anyio
@pytest.mark.parametrize("max_keys", [0, 1001])
async def test_list_objects_max_keys_bounds(gateway, max_keys):
    with pytest.raises(InvalidArgument):
        await gateway.list_objects(max_keys=max_keys)


@pytest.mark.anyio
async def test_list_objects_retries_transient_errors(gateway, fake_s3):
    fake_s3.queue_error("list_objects_v2", client_error("SlowDown", 503), client_error("InternalError", 500))
    page = await gateway.list_objects()
    assert page.objects == []
    assert fake_s3.count("list_objects_v2") == 3


@pytest.mark.anyio
async def test_list_objects_does_not_retry_access_denied(gateway, fake_s3):
    fake_s3.queue_error("list_objects_v2", client_error("AccessDenied", 403))
    with pytest.raises(UpstreamError) as ei:
        await gateway.list_objects()
    assert ei.value.status_code == 502
    assert ei.value.details["code"] == "AccessDenied"
    assert fake_s3.count("list_objects_v2") == 1


@pytest.mark.anyio
async def test_upload_then_list_round_trip(gateway, fake_s3):
    await gateway.issue_upload_url(KEY)
    fake_s3.put_object(Key=KEY, Body=b"bytes")
    page = await gateway.list_objects(prefix=KEY)
    assert [o.key for o in page.objects] == [KEY]


@pytest.mark.anyio
async def test_cancellation_propagates(fake_s3, policy):
    original = fake_s3.generate_presigned_url

    def slow(**kwargs):
        time.sleep(0.05)
        return original(**kwargs)

    fake_s3.generate_presigned_url = slow
    gw = ObjectStoreGateway(fake_s3, BUCKET, policy=policy, concurrency=1)
    task = asyncio.ensure_future(gw.open_multipart_session(KEY, 50))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert fake_s3.aborted == ["upload-1"]
    assert fake_s3.uploads == {}
