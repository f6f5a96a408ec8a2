"""Per-client request limits built on slowapi.

Each app gets its own ``Limiter`` from ``create_limiter``, stored on
``app.state.limiter`` for ``SlowAPIMiddleware``. With ``memory://`` storage
the counters live in one process only; point RATELIMIT_STORAGE_URI at Redis
when running several workers.
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


def _get_request_identifier(request: Request) -> str:
    return get_remote_address(request)


def create_limiter(settings: Settings) -> Limiter:
    shared = settings.ratelimit_storage_uri.startswith("redis://")
    if not shared and not settings.debug:
        logger.warning(
            "ratelimit.memory_storage",
            extra={"storage_uri": settings.ratelimit_storage_uri},
        )

    return Limiter(
        key_func=_get_request_identifier,
        default_limits=[settings.ratelimit_default],
        storage_uri=settings.ratelimit_storage_uri,
        # Keep limiting locally if Redis drops out
        in_memory_fallback_enabled=shared,
        key_prefix="cohort:",
    )


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> Response:
    """429 with a Retry-After header and the limit that was hit."""
    limit = getattr(exc, "detail", str(exc))
    retry_after = getattr(exc, "retry_after", DEFAULT_RETRY_AFTER_SECONDS)
    logger.warning(
        "ratelimit.exceeded",
        extra={"client": _get_request_identifier(request), "limit": limit},
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "limit": limit,
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


__all__ = [
    "RateLimitExceeded",
    "create_limiter",
    "rate_limit_exceeded_handler",
]
