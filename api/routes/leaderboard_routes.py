"""Leaderboard and cohort-wide activity endpoints."""

from fastapi import APIRouter

from core.database import DbSessionReadOnly
from repositories.notification_repository import NotificationRepository
from schemas import InactiveStudent, LeaderboardResponse, NotificationResponse
from services.inactivity_service import find_inactive_students
from services.leaderboard_service import get_leaderboard_response

router = APIRouter(prefix="/api", tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(db: DbSessionReadOnly) -> LeaderboardResponse:
    """Ranked cohort leaderboard with aggregate analytics."""
    return await get_leaderboard_response(db)


@router.get("/inactive-students", response_model=list[InactiveStudent])
async def inactive_students(db: DbSessionReadOnly) -> list[InactiveStudent]:
    """Students with no activity in the configured number of days."""
    return await find_inactive_students(db)


@router.get("/notifications", response_model=list[NotificationResponse])
async def recent_notifications(db: DbSessionReadOnly) -> list[NotificationResponse]:
    """Notifications from the last 7 days, newest first."""
    rows = await NotificationRepository(db).list_recent()
    return [NotificationResponse.model_validate(n) for n in rows]
