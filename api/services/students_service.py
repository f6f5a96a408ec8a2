"""Student roster and per-student activity view."""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from models import Student
from repositories.activity_record_repository import ActivityRecordRepository
from repositories.daily_stat_repository import DailyStatRepository
from repositories.student_repository import StudentRepository
from schemas import (
    ActivityRecordData,
    DailyStatSnapshot,
    RosterEntry,
    StudentActivity,
    WipeResult,
)
from services.streaks_service import classify_inactive, days_since

logger = logging.getLogger(__name__)


class StudentNotFoundError(Exception):
    """Raised when a username is not on the roster."""

    def __init__(self, username: str):
        super().__init__(f"Student not found: {username}")
        self.username = username


async def add_student(
    db: AsyncSession,
    username: str,
    *,
    email: str | None = None,
    name: str | None = None,
    roll_no: str | None = None,
    batch_year: int | None = None,
) -> Student:
    """Add a student to the roster, or update their details if present."""
    username = username.strip()
    if not username:
        raise ValueError("username must not be empty")
    return await StudentRepository(db).upsert(
        username,
        email=email.strip() if email else None,
        name=name.strip() if name else None,
        roll_no=roll_no.strip() if roll_no else None,
        batch_year=batch_year,
    )


async def get_student_activity(
    db: AsyncSession, username: str, now: datetime | None = None
) -> StudentActivity:
    """Activity view for one student.

    Raises:
        StudentNotFoundError: If the username is not on the roster.
    """
    now = now or datetime.now(UTC)
    rows = await StudentRepository(db).list_overview(username=username)
    if not rows:
        raise StudentNotFoundError(username)

    row = rows[0]
    record = ActivityRecordData.model_validate(row.record) if row.record else None
    stat = row.latest_stat
    last_activity = record.last_activity_date if record else None

    return StudentActivity(
        username=row.student.username,
        name=row.student.name,
        total_solved=stat.total_solved if stat else 0,
        easy=stat.easy_solved if stat else 0,
        medium=stat.medium_solved if stat else 0,
        hard=stat.hard_solved if stat else 0,
        current_streak=record.current_streak if record else 0,
        longest_streak=record.longest_streak if record else 0,
        last_activity_date=last_activity,
        days_inactive=days_since(last_activity, now),
        is_inactive=classify_inactive(
            record, now, get_settings().inactive_threshold_days
        ),
        stats_date=stat.stat_date if stat else None,
    )


async def list_students(db: AsyncSession) -> list[RosterEntry]:
    """Roster newest first, with each student's streaks where recorded."""
    students = await StudentRepository(db).list_all()
    records = {r.username: r for r in await ActivityRecordRepository(db).list_all()}

    entries = []
    for student in students:
        record = records.get(student.username)
        entries.append(
            RosterEntry(
                username=student.username,
                name=student.name,
                roll_no=student.roll_no,
                email=student.email,
                batch_year=student.batch_year,
                current_streak=record.current_streak if record else 0,
                longest_streak=record.longest_streak if record else 0,
                last_activity_date=record.last_activity_date if record else None,
            )
        )
    return entries


async def find_student(db: AsyncSession, query: str) -> Student | None:
    """Best roster match for a username, name or roll number fragment."""
    if not query.strip():
        raise ValueError("search query must not be empty")
    return await StudentRepository(db).search(query)


async def remove_student(db: AsyncSession, username: str) -> None:
    """Drop a student and everything recorded for them.

    Raises:
        StudentNotFoundError: If the username is not on the roster.
    """
    if not await StudentRepository(db).delete(username.strip()):
        raise StudentNotFoundError(username)


async def get_stat_history(
    db: AsyncSession, username: str, limit: int = 30
) -> list[DailyStatSnapshot]:
    """Daily solved-count snapshots, newest first.

    Raises:
        StudentNotFoundError: If the username is not on the roster.
    """
    if await StudentRepository(db).get(username) is None:
        raise StudentNotFoundError(username)
    stats = await DailyStatRepository(db).get_history(username, limit=limit)
    return [DailyStatSnapshot.model_validate(s) for s in stats]


async def wipe_cohort_data(db: AsyncSession) -> WipeResult:
    """Delete every student along with their records, stats and notifications."""
    records = await ActivityRecordRepository(db).delete_all()
    students = await StudentRepository(db).delete_all()
    logger.warning(
        "students.data_wiped",
        extra={"students": students, "activity_records": records},
    )
    return WipeResult(students=students, activity_records=records)
