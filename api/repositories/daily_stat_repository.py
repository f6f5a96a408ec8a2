"""Repository for per-day solved-count snapshots."""

from collections.abc import Sequence
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import DailyStat
from repositories.utils import upsert_on_conflict
from schemas import LeetCodeProfile


class DailyStatRepository:
    """One DailyStat row per (username, stat_date)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def upsert_for_day(
        self,
        username: str,
        profile: LeetCodeProfile,
        stat_date: date,
        last_submission_date: date | None,
    ) -> None:
        """Record a snapshot for the roster ``username``.

        Replaces an earlier snapshot from the same day.
        """
        values = {
            "username": username,
            "stat_date": stat_date,
            "total_solved": profile.total_solved,
            "easy_solved": profile.easy_solved,
            "medium_solved": profile.medium_solved,
            "hard_solved": profile.hard_solved,
            "ranking": profile.ranking,
            "last_submission_date": last_submission_date,
        }
        await upsert_on_conflict(
            self.db,
            DailyStat,
            values=values,
            index_elements=["username", "stat_date"],
            update_fields=[
                "total_solved",
                "easy_solved",
                "medium_solved",
                "hard_solved",
                "ranking",
                "last_submission_date",
            ],
        )

    async def get_history(
        self, username: str, *, limit: int = 30
    ) -> Sequence[DailyStat]:
        """Most recent snapshots first."""
        result = await self.db.execute(
            select(DailyStat)
            .where(DailyStat.username == username)
            .order_by(DailyStat.stat_date.desc())
            .limit(limit)
        )
        return result.scalars().all()

