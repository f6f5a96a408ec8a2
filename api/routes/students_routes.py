"""Per-student endpoints."""

from fastapi import APIRouter, HTTPException

from core.database import DbSessionReadOnly
from schemas import StudentActivity
from services.students_service import StudentNotFoundError, get_student_activity

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get(
    "/{username}/activity",
    response_model=StudentActivity,
    responses={404: {"description": "Student not found"}},
)
async def student_activity(username: str, db: DbSessionReadOnly) -> StudentActivity:
    """Streak record, latest stats and inactive flag for one student."""
    try:
        return await get_student_activity(db, username)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=404, detail="Student not found") from e
