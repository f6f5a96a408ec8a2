"""Integration tests for repositories/student_repository.py."""

from datetime import date

import pytest

from repositories.activity_record_repository import ActivityRecordRepository
from repositories.daily_stat_repository import DailyStatRepository
from repositories.student_repository import StudentRepository
from schemas import ActivityRecordData
from services.students_service import wipe_cohort_data
from tests.factories import LeetCodeProfileFactory, StudentFactory, create_async

pytestmark = pytest.mark.integration


class TestStudentRepositoryIntegration:
    async def test_upsert_inserts_then_updates(self, db_session):
        repo = StudentRepository(db_session)

        created = await repo.upsert("alice", email="a@example.com", name="Alice")
        updated = await repo.upsert("alice", email="a@example.com", name="Alice B")

        assert created.username == "alice"
        assert updated.name == "Alice B"
        assert await repo.list_usernames() == ["alice"]

    async def test_ensure_exists_keeps_existing_details(self, db_session):
        repo = StudentRepository(db_session)
        await repo.upsert("alice", name="Alice")

        await repo.ensure_exists("alice")
        await repo.ensure_exists("bob")

        assert await repo.list_usernames() == ["alice", "bob"]
        student = await repo.get("alice")
        assert student.name == "Alice"

    async def test_search_prefers_exact_match(self, db_session):
        await create_async(StudentFactory, db_session, username="ann", name="Zed")
        await create_async(StudentFactory, db_session, username="annabel", name="Ann")

        repo = StudentRepository(db_session)

        assert (await repo.search("ANN")).username == "ann"
        assert (await repo.search("abel")).username == "annabel"
        assert await repo.search("nobody-like-this") is None

    async def test_search_by_roll_number(self, db_session):
        await create_async(
            StudentFactory, db_session, username="carol", roll_no="21CS0042"
        )

        found = await StudentRepository(db_session).search("21cs0042")

        assert found is not None
        assert found.username == "carol"

    async def test_delete_cascades(self, db_session):
        repo = StudentRepository(db_session)
        await repo.upsert("alice")
        await ActivityRecordRepository(db_session).put(
            ActivityRecordData(username="alice", current_streak=1, longest_streak=1)
        )

        assert await repo.delete("alice") is True
        assert await repo.delete("alice") is False
        assert await ActivityRecordRepository(db_session).get("alice") is None

    async def test_wipe_empties_roster_and_dependent_rows(self, db_session):
        repo = StudentRepository(db_session)
        for username in ("alice", "bob"):
            await repo.upsert(username)
            await ActivityRecordRepository(db_session).put(
                ActivityRecordData(
                    username=username, current_streak=0, longest_streak=2
                )
            )
        await DailyStatRepository(db_session).upsert_for_day(
            "alice", LeetCodeProfileFactory.build(), date(2026, 1, 23), None
        )

        result = await wipe_cohort_data(db_session)

        assert (result.students, result.activity_records) == (2, 2)
        assert await repo.list_all() == []
        assert await DailyStatRepository(db_session).get_history("alice") == []


class TestStudentOverviewIntegration:
    async def test_overview_joins_record_and_latest_stat(self, db_session):
        repo = StudentRepository(db_session)
        await repo.upsert("alice", name="Alice")
        await repo.upsert("bob", name="Bob")
        await ActivityRecordRepository(db_session).put(
            ActivityRecordData(
                username="alice",
                current_streak=2,
                longest_streak=7,
                last_activity_date=date(2026, 1, 22),
            )
        )
        stats = DailyStatRepository(db_session)
        await stats.upsert_for_day(
            "alice",
            LeetCodeProfileFactory.build(username="alice", easy_solved=10),
            date(2026, 1, 21),
            None,
        )
        await stats.upsert_for_day(
            "alice",
            LeetCodeProfileFactory.build(username="alice", easy_solved=12),
            date(2026, 1, 22),
            None,
        )

        rows = await repo.list_overview()

        assert [r.student.username for r in rows] == ["alice", "bob"]
        alice, bob = rows
        assert alice.record.longest_streak == 7
        assert alice.latest_stat.stat_date == date(2026, 1, 22)
        assert alice.latest_stat.easy_solved == 12
        assert bob.record is None
        assert bob.latest_stat is None

    async def test_overview_for_one_student(self, db_session):
        repo = StudentRepository(db_session)
        await repo.upsert("alice")
        await repo.upsert("bob")

        rows = await repo.list_overview(username="bob")

        assert [r.student.username for r in rows] == ["bob"]
