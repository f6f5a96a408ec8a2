"""Inactive-student detection and notification.

A student is inactive when they have no recorded activity date, or when
their last activity is at least ``inactive_threshold_days`` UTC days ago.
Detection writes at most one inactive warning per student per UTC day;
re-running it on the same day is a no-op for students already warned.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from repositories.notification_repository import NotificationRepository
from repositories.student_repository import StudentRepository
from schemas import ActivityRecordData, InactiveDetectionResult, InactiveStudent
from services.streaks_service import classify_inactive, days_since

logger = logging.getLogger(__name__)


async def find_inactive_students(
    db: AsyncSession, now: datetime | None = None
) -> list[InactiveStudent]:
    """Inactive students, longest-inactive first."""
    now = now or datetime.now(UTC)
    threshold = get_settings().inactive_threshold_days
    rows = await StudentRepository(db).list_overview()

    inactive: list[InactiveStudent] = []
    for row in rows:
        record = (
            ActivityRecordData.model_validate(row.record) if row.record else None
        )
        if not classify_inactive(record, now, threshold):
            continue

        last_activity = record.last_activity_date if record else None
        inactive.append(
            InactiveStudent(
                username=row.student.username,
                name=row.student.name,
                email=row.student.email,
                roll_no=row.student.roll_no,
                total_solved=row.latest_stat.total_solved if row.latest_stat else 0,
                current_streak=record.current_streak if record else 0,
                longest_streak=record.longest_streak if record else 0,
                last_activity_date=last_activity,
                days_inactive=days_since(last_activity, now),
            )
        )

    inactive.sort(key=lambda s: (-s.days_inactive, s.username))
    return inactive


async def detect_and_notify_inactive(
    db: AsyncSession, now: datetime | None = None
) -> InactiveDetectionResult:
    """Flag inactive students and create today's warnings.

    Does NOT commit. Caller owns the transaction.
    """
    now = now or datetime.now(UTC)
    inactive = await find_inactive_students(db, now)
    notifications = NotificationRepository(db)

    result = InactiveDetectionResult(inactive_count=len(inactive))
    for student in inactive:
        created = await notifications.notify_inactive(
            student.username,
            student.days_inactive,
            {"name": student.name, "total_solved": student.total_solved},
            on=now.astimezone(UTC).date(),
        )
        if created:
            result.notified.append(student.username)
        else:
            result.already_notified.append(student.username)

    logger.info(
        "inactive.detection.completed",
        extra={
            "inactive_count": result.inactive_count,
            "notified": len(result.notified),
            "already_notified": len(result.already_notified),
        },
    )
    return result
