"""Liveness, readiness and component status endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.database import PoolStatus, check_db_connection, comprehensive_health_check
from schemas import DetailedHealthResponse, HealthResponse, PoolStatusResponse

SERVICE_NAME = "cohort-tracker-api"

router = APIRouter(tags=["health"])


def _unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def _pool_response(pool: PoolStatus | None) -> PoolStatusResponse | None:
    if pool is None:
        return None
    return PoolStatusResponse(**pool._asdict())


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Report database reachability and pool usage.

    Answers 200 either way; callers read ``status`` to tell the difference.
    """
    result = await comprehensive_health_check(request.app.state.engine)
    return DetailedHealthResponse(
        status="healthy" if result["database"] else "unhealthy",
        service=SERVICE_NAME,
        database=result["database"],
        pool=_pool_response(result["pool"]),
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"description": "Startup unfinished or database unreachable"}},
)
async def ready(request: Request) -> HealthResponse:
    state = request.app.state
    init_error = getattr(state, "init_error", None)
    if init_error:
        raise _unavailable(f"Initialization failed: {init_error}")
    if not getattr(state, "init_done", False):
        raise _unavailable("Starting")

    try:
        await check_db_connection(state.engine)
    except Exception as exc:
        raise _unavailable("Database unavailable") from exc

    return HealthResponse(status="ready", service=SERVICE_NAME)
