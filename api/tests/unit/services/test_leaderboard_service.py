"""Unit tests for leaderboard ranking and analytics."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from repositories.student_repository import StudentOverviewRow
from schemas import LeaderboardEntry
from services.leaderboard_service import (
    build_leaderboard,
    calculate_analytics,
    get_leaderboard_response,
    invalidate_leaderboard_cache,
    reached_milestones,
)
from tests.factories import ActivityRecordFactory, DailyStatFactory, StudentFactory

pytestmark = pytest.mark.unit


def _row(username, *, easy=0, medium=0, hard=0, ranking=0, current=0, longest=0):
    return StudentOverviewRow(
        student=StudentFactory.build(username=username),
        record=ActivityRecordFactory.build(
            username=username, current_streak=current, longest_streak=longest
        ),
        latest_stat=DailyStatFactory.build(
            username=username,
            easy_solved=easy,
            medium_solved=medium,
            hard_solved=hard,
            ranking=ranking,
        ),
    )


def _entry(username, total, ranking=0, **kwargs) -> LeaderboardEntry:
    return LeaderboardEntry(
        rank=0, username=username, total_solved=total, ranking=ranking, **kwargs
    )


@pytest.fixture(autouse=True)
def _clear_cache():
    invalidate_leaderboard_cache()
    yield
    invalidate_leaderboard_cache()


class TestReachedMilestones:
    @pytest.mark.parametrize(
        "total,expected",
        [
            (0, []),
            (49, []),
            (50, [50]),
            (250, [50, 100, 200]),
            (1500, [50, 100, 200, 300, 500, 1000]),
        ],
    )
    def test_thresholds(self, total, expected):
        assert reached_milestones(total) == expected


class TestBuildLeaderboard:
    def test_orders_by_total_then_streaks(self):
        rows = [
            _row("low", easy=10),
            _row("tie_short", easy=50, longest=3, current=1),
            _row("tie_long", easy=50, longest=9, current=0),
            _row("top", easy=80, medium=20),
        ]

        board = build_leaderboard(rows)

        assert [e.username for e in board] == ["top", "tie_long", "tie_short", "low"]
        assert [e.rank for e in board] == [1, 2, 3, 4]
        assert board[0].total_solved == 100

    def test_current_streak_breaks_longest_tie(self):
        rows = [
            _row("b", easy=5, longest=4, current=1),
            _row("a", easy=5, longest=4, current=3),
        ]
        assert [e.username for e in build_leaderboard(rows)] == ["a", "b"]

    def test_username_breaks_full_tie(self):
        rows = [_row("zed", easy=5), _row("amy", easy=5)]
        assert [e.username for e in build_leaderboard(rows)] == ["amy", "zed"]

    def test_student_without_stats_ranks_with_zeros(self):
        rows = [
            StudentOverviewRow(
                student=StudentFactory.build(username="fresh"),
                record=None,
                latest_stat=None,
            ),
            _row("someone", easy=1),
        ]

        board = build_leaderboard(rows)

        assert board[-1].username == "fresh"
        assert board[-1].total_solved == 0
        assert board[-1].last_activity_date is None

    def test_empty(self):
        assert build_leaderboard([]) == []


class TestCalculateAnalytics:
    def test_empty_cohort_has_no_analytics(self):
        assert calculate_analytics([]) is None

    def test_averages_round_half_up(self):
        entries = [_entry("a", 1, ranking=1500), _entry("b", 2, ranking=1501)]

        analytics = calculate_analytics(entries)

        assert analytics.total_users == 2
        assert analytics.average_problems == 2
        assert analytics.average_rating == 1501

    def test_rating_distribution_buckets(self):
        entries = [
            _entry("unrated", 0, ranking=0),
            _entry("low", 0, ranking=1399),
            _entry("knight", 0, ranking=1400),
            _entry("high", 0, ranking=1600),
        ]

        distribution = calculate_analytics(entries).rating_distribution

        assert distribution == {
            "Unrated": 1,
            "Guardian (0-1399)": 1,
            "Knight (1400-1599)": 1,
            "Guardian+ (1600+)": 1,
        }

    def test_difficulty_totals_and_top_performers(self):
        entries = [
            _entry(f"user{i}", 10 - i, easy=i, medium=1, hard=2) for i in range(5)
        ]

        analytics = calculate_analytics(entries)

        assert analytics.difficulty_stats.easy == 10
        assert analytics.difficulty_stats.medium == 5
        assert analytics.difficulty_stats.hard == 10
        assert [e.username for e in analytics.top_performers] == [
            "user0",
            "user1",
            "user2",
        ]


class TestLeaderboardCache:
    async def test_second_call_is_served_from_cache(self):
        with patch("services.leaderboard_service.StudentRepository") as repo:
            repo.return_value.list_overview = AsyncMock(
                return_value=[_row("alice", easy=3)]
            )

            first = await get_leaderboard_response(MagicMock())
            second = await get_leaderboard_response(MagicMock())

        assert first is second
        repo.return_value.list_overview.assert_awaited_once()

    async def test_invalidate_forces_rebuild(self):
        with patch("services.leaderboard_service.StudentRepository") as repo:
            repo.return_value.list_overview = AsyncMock(return_value=[])

            await get_leaderboard_response(MagicMock())
            invalidate_leaderboard_cache()
            response = await get_leaderboard_response(MagicMock())

        assert repo.return_value.list_overview.await_count == 2
        assert response.leaderboard == []
        assert response.analytics is None
