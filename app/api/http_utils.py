from __future__ import annotations

"""
Media Uploads API · HTTP Utilities
==================================

Shared helpers for API routers:

- No-store JSON helper for responses that carry signed URLs
- Idempotency-Key header sanitization
"""

import re
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import InvalidArgument

__all__ = ["json_no_store", "sanitize_idempotency_key"]

_IDEMPOTENCY_KEY_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def json_no_store(payload: Any, status_code: int = 200) -> JSONResponse:
    """
    Return a JSON response with strict `no-store` caching.

    Pydantic models (or lists of them) are serialized via `jsonable_encoder`,
    so datetimes come out as ISO-8601 strings.
    """
    return JSONResponse(
        jsonable_encoder(payload, exclude_none=True),
        status_code=status_code,
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


def sanitize_idempotency_key(value: Optional[str]) -> Optional[str]:
    """
    Validate an `Idempotency-Key` header value.

    MediaConvert accepts up to 64 characters for `ClientRequestToken`; reject
    anything longer or with unexpected characters instead of truncating.
    """
    if value is None:
        return None
    v = value.strip()
    if not v:
        return None
    if not _IDEMPOTENCY_KEY_RE.fullmatch(v):
        raise InvalidArgument(
            "Idempotency-Key must be 1-64 characters of [A-Za-z0-9._:-]",
            details={"header": "Idempotency-Key"},
        )
    return v
