# app/main.py
from __future__ import annotations

"""
# Media Uploads API — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the managed-media service:
direct-to-S3 uploads, MediaConvert transcoding and CloudFront signed delivery.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Backend handles (S3 / MediaConvert clients, CloudFront key) are built
  **once** at startup and shared; misconfiguration fails startup.
- Safe, explicit **middleware order**:
  1) request id → 2) CORS → 3) gzip → 4) rate limits.
- Centralized problem+json exception handling.

## Health checks
- `/healthz` — liveness (process up).
- `/readyz` — readiness (backend handles initialised).
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

# -- Logging bootstrap (Loguru + stdlib intercept) ----------------------------
from app.core import logger as _logsetup  # noqa: F401
from app.core.clients import MediaClients, init_media_clients
from app.core.config import Settings, settings
from app.core.exception_handlers import (
    app_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.exceptions import AppException
from app.core.limiter import install_rate_limiter, rate_limit_exempt
from app.middleware.request_id import RequestIDMiddleware
from app.repositories.uploads import get_upload_record_store
from app.services.cdn_signing import DeliverySigner
from app.services.transcoding import TranscodingOrchestrator
from app.services.uploads_service import UploadFacade
from app.utils.aws import ObjectStoreGateway
from app.utils.file_keys import parse_environment
from app.utils.upstream import UpstreamPolicy

logger = logging.getLogger("app.main")


# ─────────────────────────────────────────────────────────────────────────────
# 🧱 Wiring
# ─────────────────────────────────────────────────────────────────────────────
def _signer_configured(s: Settings) -> bool:
    return any([s.CLOUDFRONT_DOMAIN, s.CLOUDFRONT_KEY_PAIR_ID, s.CLOUDFRONT_PRIVATE_KEY_PEM, s.CLOUDFRONT_PRIVATE_KEY_PATH])


def build_upload_facade(s: Settings, clients: MediaClients) -> UploadFacade:
    """
    Compose the facade from process-wide handles.

    CloudFront and MediaConvert are optional features: when none of their
    settings are present they stay off; when some are present, any missing or
    invalid value raises `ConfigurationError` and aborts startup.
    """
    env = parse_environment(s.ENV)
    policy = UpstreamPolicy.from_settings(s)
    gateway = ObjectStoreGateway(
        clients.s3,
        s.AWS_BUCKET_NAME,
        policy=policy,
        concurrency=s.MULTIPART_PRESIGN_CONCURRENCY,
    )

    signer: Optional[DeliverySigner] = None
    if _signer_configured(s):
        signer = DeliverySigner.from_settings(s)
    else:
        logger.warning("CloudFront signing not configured; viewing routes are disabled")

    orchestrator: Optional[TranscodingOrchestrator] = None
    if clients.mediaconvert is not None:
        orchestrator = TranscodingOrchestrator(
            clients.mediaconvert,
            role_arn=s.MEDIACONVERT_ROLE_ARN,
            queue_arn=s.MEDIACONVERT_QUEUE_ARN,
            input_bucket=s.AWS_BUCKET_NAME,
            output_bucket=s.transcode_output_bucket,
            output_prefix=s.TRANSCODE_OUTPUT_PREFIX,
            policy=policy,
        )
    else:
        logger.warning("MediaConvert not configured; transcoding routes are disabled")

    return UploadFacade(
        env=env,
        gateway=gateway,
        signer=signer,
        orchestrator=orchestrator,
        records=get_upload_record_store(s.UPLOAD_RECORD_STORE_IMPL),
    )


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup:
        - Build the AWS clients and the upload facade (once).
    Shutdown:
        - Drop the handles; boto3 closes pooled connections on GC.
    """
    logger.info("✅ %s starting up (env=%s)", settings.PROJECT_NAME, settings.ENV)
    # Tests (and embedding apps) may pre-populate the facade.
    if getattr(app.state, "upload_facade", None) is None:
        clients = init_media_clients(settings)
        app.state.media_clients = clients
        app.state.upload_facade = build_upload_facade(settings, clients)
    try:
        yield
    finally:
        app.state.upload_facade = None
        app.state.media_clients = None
        logger.info("🛑 %s shutting down", settings.PROJECT_NAME)


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Returns:
        FastAPI: application with middleware, exception handlers, routers and
        health/readiness endpoints.
    """
    enable_docs = settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/docs" if enable_docs else None,
        redoc_url="/redoc" if enable_docs else None,
        openapi_url="/openapi.json" if enable_docs else None,
        lifespan=lifespan,
    )
    app.state.upload_facade = None

    # ── Middlewares (order matters) ─────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)  # 1) Correlation ID

    # 2) CORS (allow-list via FRONTEND_ORIGINS)
    origins = settings.frontend_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID"],
        )

    # 3) GZip (part-URL lists can be large)
    app.add_middleware(GZipMiddleware, minimum_size=1024)

    # 4) Rate limiter (SlowAPI middleware + 429 handler)
    install_rate_limiter(app)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── Exception handlers (problem+json) ───────────────────────────────────
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]

    # ── Routers (versioned API) ─────────────────────────────────────────────
    from app.api.v1.routers import router as api_v1_router

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    @rate_limit_exempt()
    async def healthz() -> dict[str, bool]:
        """Liveness check. No external checks."""
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    @rate_limit_exempt()
    async def readyz() -> JSONResponse:
        """Readiness check: handles are built and which optional features are on."""
        facade = getattr(app.state, "upload_facade", None)
        checks = {
            "storage": facade is not None,
            "signing": bool(facade is not None and facade.signer is not None),
            "transcoding": bool(facade is not None and facade.orchestrator is not None),
        }
        return JSONResponse(
            {"ready": checks["storage"], "checks": checks},
            status_code=200 if checks["storage"] else 503,
        )

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn/Gunicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "build_upload_facade", "app"]


# Local dev runner (prefer: `uvicorn app.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        workers=int(os.getenv("WORKERS", "1")),
        log_level=os.getenv("LOG_LEVEL", "info"),
    )
