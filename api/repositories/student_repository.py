"""Student repository for database operations."""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import NamedTuple

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityRecord, DailyStat, Student
from repositories.utils import log_slow_query, upsert_on_conflict


class StudentOverviewRow(NamedTuple):
    """A student joined with their streak record and latest daily stat."""

    student: Student
    record: ActivityRecord | None
    latest_stat: DailyStat | None


class StudentRepository:
    """Repository for Student database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, username: str) -> Student | None:
        result = await self.db.execute(
            select(Student).where(Student.username == username)
        )
        return result.scalar_one_or_none()

    async def list_usernames(self) -> list[str]:
        result = await self.db.execute(
            select(Student.username).order_by(Student.username)
        )
        return list(result.scalars().all())

    async def list_all(self) -> Sequence[Student]:
        result = await self.db.execute(
            select(Student).order_by(Student.created_at.desc())
        )
        return result.scalars().all()

    async def upsert(
        self,
        username: str,
        *,
        email: str | None = None,
        name: str | None = None,
        roll_no: str | None = None,
        batch_year: int | None = None,
    ) -> Student:
        """Insert a student or update their contact details.

        Expects username to be pre-normalized (stripped) by the caller.
        """
        values = {
            "username": username,
            "email": email,
            "name": name,
            "roll_no": roll_no,
            "batch_year": batch_year,
            "updated_at": datetime.now(UTC),
        }
        student = await upsert_on_conflict(
            self.db,
            Student,
            values=values,
            index_elements=["username"],
            update_fields=["email", "name", "roll_no", "batch_year", "updated_at"],
            returning=True,
        )
        assert student is not None
        return student

    async def ensure_exists(self, username: str) -> None:
        """Insert a bare student row if the username is unknown."""
        stmt = (
            pg_insert(Student)
            .values(username=username)
            .on_conflict_do_nothing(index_elements=["username"])
        )
        await self.db.execute(stmt)

    async def delete(self, username: str) -> bool:
        """Delete a student; related rows go with it (ON DELETE CASCADE)."""
        result = await self.db.execute(
            delete(Student).where(Student.username == username)
        )
        return (result.rowcount or 0) > 0

    async def delete_all(self) -> int:
        """Empty the roster; stats and notifications cascade."""
        result = await self.db.execute(delete(Student))
        return result.rowcount or 0

    async def search(self, query: str) -> Student | None:
        """Best match by username, name or roll number (exact matches first)."""
        term = query.lower().strip()
        pattern = f"%{term}%"
        rank = case(
            (func.lower(Student.username) == term, 1),
            (func.lower(Student.name) == term, 2),
            (func.lower(Student.roll_no) == term, 3),
            else_=4,
        )
        result = await self.db.execute(
            select(Student)
            .where(
                or_(
                    func.lower(Student.username).like(pattern),
                    func.lower(Student.name).like(pattern),
                    func.lower(Student.roll_no).like(pattern),
                )
            )
            .order_by(rank, Student.username)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @log_slow_query("list_student_overview")
    async def list_overview(
        self, username: str | None = None
    ) -> list[StudentOverviewRow]:
        """Students with their streak record and most recent daily stat."""
        latest = (
            select(
                DailyStat.username.label("username"),
                func.max(DailyStat.stat_date).label("stat_date"),
            )
            .group_by(DailyStat.username)
            .subquery()
        )
        stmt = (
            select(Student, ActivityRecord, DailyStat)
            .outerjoin(ActivityRecord, ActivityRecord.username == Student.username)
            .outerjoin(latest, latest.c.username == Student.username)
            .outerjoin(
                DailyStat,
                and_(
                    DailyStat.username == Student.username,
                    DailyStat.stat_date == latest.c.stat_date,
                ),
            )
            .order_by(Student.username)
        )
        if username is not None:
            stmt = stmt.where(Student.username == username)

        result = await self.db.execute(stmt)
        return [StudentOverviewRow(*row) for row in result.all()]
