# app/core/dependencies.py
from __future__ import annotations

"""
Request dependencies.

The upload facade and its backend handles are built once in the lifespan and
stored on `app.state`; routes receive them through `Depends`, which also lets
tests swap in a facade wired to fakes via `app.dependency_overrides`.
"""

from fastapi import Request

from app.core.exceptions import ConfigurationError
from app.services.uploads_service import UploadFacade

__all__ = ["get_upload_facade"]


def get_upload_facade(request: Request) -> UploadFacade:
    facade = getattr(request.app.state, "upload_facade", None)
    if facade is None:
        raise ConfigurationError("Upload facade not initialised")
    return facade
