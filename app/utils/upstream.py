from __future__ import annotations

"""
Bounded upstream calls (S3 / MediaConvert / signer).

Every blocking boto3 call is pushed to a worker thread and awaited under a
hard timeout. Failures are mapped onto the application error taxonomy:

    botocore timeouts, asyncio timeout      -> UpstreamTimeout
    ClientError (not-found codes)           -> NotFound
    ClientError / BotoCoreError (other)     -> UpstreamError

`call_once` is for writes and URL issuance (never retried). `call_read` is for
idempotent reads and retries transient failures with exponential backoff and
jitter.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from app.core.exceptions import AppException, NotFound, UpstreamError, UpstreamTimeout

log = logging.getLogger(__name__)

_THROTTLING_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeoutException",
    "InternalError",
    "ServiceUnavailable",
})


@dataclass(frozen=True)
class UpstreamPolicy:
    timeout: float = 15.0
    read_attempts: int = 3
    base_delay: float = 0.25
    max_delay: float = 2.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, s: Any) -> "UpstreamPolicy":
        return cls(
            timeout=float(s.UPSTREAM_TIMEOUT_SECONDS),
            read_attempts=int(s.UPSTREAM_READ_ATTEMPTS),
            base_delay=float(s.UPSTREAM_RETRY_BASE_DELAY),
            max_delay=float(s.UPSTREAM_RETRY_MAX_DELAY),
        )


def error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or "")
    return ""


def _http_status(exc: BaseException) -> int:
    if isinstance(exc, ClientError):
        meta = exc.response.get("ResponseMetadata", {}) or {}
        return int(meta.get("HTTPStatusCode") or 0)
    return 0


def is_transient(exc: BaseException) -> bool:
    """Timeouts, connection failures, throttling and 5xx are worth another try."""
    if isinstance(exc, (asyncio.TimeoutError, ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)):
        return True
    if isinstance(exc, ClientError):
        return error_code(exc) in _THROTTLING_CODES or _http_status(exc) >= 500
    return False


def map_upstream_error(
    exc: BaseException,
    *,
    operation: str,
    not_found_codes: Iterable[str] = (),
) -> AppException:
    """Translate a raw backend failure into an `AppException`."""
    if isinstance(exc, AppException):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, ConnectTimeoutError, ReadTimeoutError)):
        return UpstreamTimeout(f"{operation} timed out", details={"operation": operation})
    code = error_code(exc)
    nf = set(not_found_codes)
    if isinstance(exc, ClientError):
        if nf and (code in nf or _http_status(exc) == 404):
            return NotFound(f"{operation}: resource not found", details={"operation": operation, "code": code})
        return UpstreamError(
            f"{operation} failed: {code or 'ClientError'}",
            details={"operation": operation, "code": code or None},
        )
    if isinstance(exc, BotoCoreError):
        return UpstreamError(
            f"{operation} failed: {type(exc).__name__}",
            details={"operation": operation},
        )
    return UpstreamError(f"{operation} failed: {type(exc).__name__}", details={"operation": operation})


async def _run(fn: Callable[..., Any], args: tuple, kwargs: dict, timeout: float) -> Any:
    # On timeout the worker thread runs on until botocore's own read timeout.
    return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=timeout)


async def call_once(
    fn: Callable[..., Any],
    *args: Any,
    policy: UpstreamPolicy,
    operation: str,
    not_found_codes: Iterable[str] = (),
    **kwargs: Any,
) -> Any:
    """Single bounded attempt. Use for non-idempotent calls."""
    try:
        return await _run(fn, args, kwargs, policy.timeout)
    except (asyncio.TimeoutError, BotoCoreError, ClientError) as e:
        raise map_upstream_error(e, operation=operation, not_found_codes=not_found_codes) from e


async def call_read(
    fn: Callable[..., Any],
    *args: Any,
    policy: UpstreamPolicy,
    operation: str,
    not_found_codes: Iterable[str] = (),
    **kwargs: Any,
) -> Any:
    """Bounded, retried call for idempotent reads."""
    attempts = max(1, int(policy.read_attempts))
    delay = float(policy.base_delay)
    last_exc: Optional[BaseException] = None
    for i in range(attempts):
        try:
            return await _run(fn, args, kwargs, policy.timeout)
        except (asyncio.TimeoutError, BotoCoreError, ClientError) as e:
            last_exc = e
            if not is_transient(e) or i >= attempts - 1:
                break
            log.info("[Upstream] %s transient failure (%s); retry %d/%d", operation, type(e).__name__, i + 1, attempts - 1)
            await asyncio.sleep(delay + random.uniform(0, policy.jitter))
            delay = min(policy.max_delay, delay * 2)
    if last_exc is None:
        raise UpstreamError(f"{operation} failed", details={"operation": operation})
    raise map_upstream_error(last_exc, operation=operation, not_found_codes=not_found_codes) from last_exc


__all__ = [
    "UpstreamPolicy",
    "error_code",
    "is_transient",
    "map_upstream_error",
    "call_once",
    "call_read",
]
