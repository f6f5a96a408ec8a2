"""Repository for dashboard notifications.

Doubles as the notification sink for inactivity alerts: inserts are
idempotent per (username, type, dedupe_key), so repeated detection runs on
the same day create at most one inactive warning per student.
"""

from collections.abc import Mapping, Sequence
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models import Notification, NotificationType
from services.streaks_service import NEVER_ACTIVE_DAYS


def _inactive_message(
    username: str, days_inactive: int, context: Mapping[str, Any]
) -> str:
    name = context.get("name") or username
    total_solved = context.get("total_solved", 0)
    if days_inactive >= NEVER_ACTIVE_DAYS:
        days_text = "never been active"
    else:
        days_text = f"been inactive for {days_inactive} days"
    return f"{name} has {days_text}. Total solved: {total_solved}"


class NotificationRepository:
    """Repository for Notification rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _insert_once(
        self,
        username: str,
        notification_type: NotificationType,
        dedupe_key: str,
        message: str,
        notified_on: date,
    ) -> bool:
        stmt = (
            pg_insert(Notification)
            .values(
                username=username,
                notification_type=notification_type,
                dedupe_key=dedupe_key,
                message=message,
                notified_on=notified_on,
            )
            .on_conflict_do_nothing(
                index_elements=["username", "notification_type", "dedupe_key"]
            )
            .returning(Notification.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def notify_inactive(
        self,
        username: str,
        days_inactive: int,
        context: Mapping[str, Any] | None = None,
        *,
        on: date | None = None,
    ) -> bool:
        """Create today's inactive warning for a student.

        Returns False when one already exists for that UTC day.
        """
        notified_on = on or datetime.now(UTC).date()
        return await self._insert_once(
            username,
            NotificationType.INACTIVE_WARNING,
            f"inactive:{notified_on.isoformat()}",
            _inactive_message(username, days_inactive, context or {}),
            notified_on,
        )

    async def add_milestone(
        self, username: str, milestone: int, *, on: date | None = None
    ) -> bool:
        """Record a solved-count milestone once per student."""
        return await self._insert_once(
            username,
            NotificationType.MILESTONE,
            f"milestone:{milestone}",
            f"Milestone achieved! {username} solved {milestone} problems!",
            on or datetime.now(UTC).date(),
        )

    async def list_recent(
        self, *, days: int = 7, limit: int = 20
    ) -> Sequence[Notification]:
        since = datetime.now(UTC) - timedelta(days=days)
        result = await self.db.execute(
            select(Notification)
            .where(Notification.created_at >= since)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()
