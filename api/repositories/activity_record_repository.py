"""Repository for persisted streak records (the activity store)."""

from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityRecord
from repositories.utils import log_slow_query, upsert_on_conflict
from schemas import ActivityRecordData


class ActivityRecordRepository:
    """Read/write access to one ActivityRecord per student."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("get_activity_record")
    async def get(self, username: str) -> ActivityRecordData | None:
        result = await self.db.execute(
            select(ActivityRecord).where(ActivityRecord.username == username)
        )
        row = result.scalar_one_or_none()
        return ActivityRecordData.model_validate(row) if row else None

    @log_slow_query("get_activity_record_for_update")
    async def get_for_update(self, username: str) -> ActivityRecordData | None:
        """Read the record and hold a row lock until the transaction ends.

        Serializes reconciliation for the same student across processes;
        in-process callers also hold the per-student asyncio lock.
        """
        result = await self.db.execute(
            select(ActivityRecord)
            .where(ActivityRecord.username == username)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        return ActivityRecordData.model_validate(row) if row else None

    @log_slow_query("put_activity_record")
    async def put(self, record: ActivityRecordData) -> ActivityRecordData:
        """Insert or update the record in a single statement.

        longest_streak is merged with GREATEST so a stale writer can never
        lower the stored high-water mark.
        """
        now = datetime.now(UTC)
        values = {
            "username": record.username,
            "current_streak": record.current_streak,
            "longest_streak": record.longest_streak,
            "last_activity_date": record.last_activity_date,
            "updated_at": now,
        }
        row = await upsert_on_conflict(
            self.db,
            ActivityRecord,
            values=values,
            index_elements=["username"],
            update_fields=["current_streak", "last_activity_date", "updated_at"],
            set_overrides={
                "longest_streak": func.greatest(
                    ActivityRecord.longest_streak, record.longest_streak
                )
            },
            returning=True,
        )
        return ActivityRecordData.model_validate(row)

    async def list_all(self) -> Sequence[ActivityRecordData]:
        result = await self.db.execute(
            select(ActivityRecord).order_by(ActivityRecord.username)
        )
        return [ActivityRecordData.model_validate(r) for r in result.scalars().all()]

    async def delete_all(self) -> int:
        """Remove every record (cohort-wide data wipe)."""
        result = await self.db.execute(delete(ActivityRecord))
        return result.rowcount or 0
