from __future__ import annotations

"""
Media Uploads API — HTTP Rate Limiting (SlowAPI)
================================================

Highlights
----------
- Per-client-IP keying (X-Forwarded-For / X-Real-IP / client.host).
- Exemptions: health/docs paths, configurable trusted IPs.
- Test/CI friendly:
    - `RATE_LIMIT_NAMESPACE`: prefixes keys so parallel runs don't collide.
    - `RATE_LIMIT_TEST_BYPASS`: disables limits when truthy.
- Backend: `RATELIMIT_STORAGE_URI` (default in-memory).

Environment
-----------
RATE_LIMIT_ENABLED           default: "true"
DEFAULT_RATE_LIMIT           default: "100/minute"
RATELIMIT_STORAGE_URI        default: "" (falls back to "memory://")
RATELIMIT_STRATEGY           default: "moving-window"
RATE_LIMIT_SKIP_PATHS        default: "/healthz,/readyz,/docs,/openapi.json"
RATE_LIMIT_TRUSTED_IPS       default: "" (comma separated)
RATE_LIMIT_NAMESPACE         default: ""
RATE_LIMIT_TEST_BYPASS       default: "" (truthy to bypass in tests/CI)

Usage
-----
    @router.post("/uploads/upload-url")
    @rate_limit("30/minute")
    async def issue_upload_url(request: Request, ...): ...
"""

import os
from typing import Callable, List, Optional, Set

from dotenv import load_dotenv
from loguru import logger
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.requests import Request

# ──────────────────────────────────────────────────────────────
# ⚙️ Environment & defaults
# ──────────────────────────────────────────────────────────────
load_dotenv()

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
DEFAULT_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "100/minute").strip()
STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "").strip()
STRATEGY = os.getenv("RATELIMIT_STRATEGY", "moving-window").strip()

SKIP_PATHS: List[str] = [
    p.strip()
    for p in os.getenv("RATE_LIMIT_SKIP_PATHS", "/healthz,/readyz,/docs,/openapi.json").split(",")
    if p.strip()
]

TRUSTED_IPS: Set[str] = {ip.strip() for ip in os.getenv("RATE_LIMIT_TRUSTED_IPS", "").split(",") if ip.strip()}

NAMESPACE = os.getenv("RATE_LIMIT_NAMESPACE", "").strip()


def _truthy(v: Optional[str]) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "on"}


# ──────────────────────────────────────────────────────────────
# 🧠 Keying & exemptions
# ──────────────────────────────────────────────────────────────
def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    return get_remote_address(request) or "unknown"


def get_rate_limit_key(request: Request) -> str:
    key = f"ip:{_client_ip(request)}"
    return f"{NAMESPACE}:{key}" if NAMESPACE else key


def _path_is_skipped(path: str) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in SKIP_PATHS)


def should_exempt_request(request: Optional[Request]) -> bool:
    """
    Exempt a request when limits are off, the path is skipped, the client IP
    is trusted, or the test bypass is on.
    """
    # Re-read env flags at request time so tests can toggle them.
    if os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() != "true":
        return True
    if _truthy(os.getenv("RATE_LIMIT_TEST_BYPASS")):
        return True
    if request is None:
        return False
    if _path_is_skipped(request.url.path):
        return True
    return _client_ip(request) in TRUSTED_IPS


# ──────────────────────────────────────────────────────────────
# 🧰 Limiter instance
# ──────────────────────────────────────────────────────────────
def _build_default_limits() -> List[str]:
    return [chunk.strip() for chunk in DEFAULT_LIMIT.split(",") if chunk.strip()]


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=_build_default_limits(),
    headers_enabled=True,
    storage_uri=STORAGE_URI or "memory://",
    strategy=STRATEGY,
)


# ──────────────────────────────────────────────────────────────
# 🎛 Decorators
# ──────────────────────────────────────────────────────────────
def _exempt_when(request: Optional[Request] = None) -> bool:
    return should_exempt_request(request)


def rate_limit(*limits: str) -> Callable:
    """
    Apply per-route limits with the exemptions above.

    @rate_limit("10/minute")
    @rate_limit("5/second", "100/minute")
    """
    selected = list(limits) if limits else _build_default_limits()
    decorators = [limiter.limit(value, exempt_when=_exempt_when) for value in selected]

    def _apply(fn: Callable) -> Callable:
        for deco in reversed(decorators):
            fn = deco(fn)
        return fn

    return _apply


def rate_limit_exempt() -> Callable:
    """Explicitly exempt a route from limiting."""
    return limiter.exempt


# ──────────────────────────────────────────────────────────────
# 🔧 Installer
# ──────────────────────────────────────────────────────────────
def install_rate_limiter(app) -> None:
    """Attach SlowAPI middleware (skipped when RATE_LIMIT_ENABLED is false)."""
    app.state.limiter = limiter
    if not RATE_LIMIT_ENABLED:
        logger.info("RateLimiter disabled by env; middleware not installed")
        return
    app.add_middleware(SlowAPIMiddleware)
    logger.info(
        "✅ RateLimiter ready | default={} | storage={} | ns={}",
        _build_default_limits(), STORAGE_URI or "memory://", NAMESPACE,
    )


__all__ = ["limiter", "rate_limit", "rate_limit_exempt", "install_rate_limiter", "should_exempt_request"]
