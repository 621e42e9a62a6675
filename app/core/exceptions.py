# app/core/exceptions.py
from __future__ import annotations

"""
Media Uploads API — Application Exceptions
==========================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and integrate cleanly with the
problem+json shape rendered by `app.core.exception_handlers`.

Taxonomy
--------
- `ConfigurationError`  missing/invalid required setting (startup, 500)
- `InvalidArgument`     malformed or unsupported caller input (400)
- `NotFound`            requested job/object/upload does not exist (404)
- `BackendUnavailable`  multipart allocation failed; restart the flow (503)
- `UpstreamError`       store/signer/engine failure (502)
- `UpstreamTimeout`     store/signer/engine did not answer in time (504)

Usage
-----
    raise InvalidArgument("part_count must be >= 1", details={"part_count": 0})
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "ConfigurationError",
    "InvalidArgument",
    "NotFound",
    "BackendUnavailable",
    "UpstreamError",
    "UpstreamTimeout",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code.
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : str
        Stable machine-readable error code (defaults to the class name).
    details : dict | list | str | None
        Machine-readable details (e.g., offending values, upstream codes).
    """

    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        status_code = int(status_code or self.default_status)
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message: str = message
        self.code: str = code or type(self).__name__
        self.details: Optional[Any] = details

    def __str__(self) -> str:
        return self.message

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, instance: str, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our problem+json shape."""
        body: Dict[str, Any] = {
            "type": "about:blank",
            "title": self.code,
            "detail": self.message,
            "status": self.status_code,
            "instance": instance,
            "request_id": request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(AppException):
    """A required setting is missing or invalid. Fatal at startup."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR


class InvalidArgument(AppException):
    """Malformed or unsupported caller input; never retried."""

    default_status = status.HTTP_400_BAD_REQUEST


class NotFound(AppException):
    """The requested job/object does not exist."""

    default_status = status.HTTP_404_NOT_FOUND


class BackendUnavailable(AppException):
    """The store could not allocate a multipart session."""

    default_status = status.HTTP_503_SERVICE_UNAVAILABLE


class UpstreamError(AppException):
    """Failure reported by the object store, signer or transcoding engine."""

    default_status = status.HTTP_502_BAD_GATEWAY


class UpstreamTimeout(UpstreamError):
    """An outbound call exceeded its bounded timeout."""

    default_status = status.HTTP_504_GATEWAY_TIMEOUT
