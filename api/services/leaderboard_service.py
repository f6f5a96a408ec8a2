"""Cohort leaderboard and its aggregate analytics.

The leaderboard is built from the student overview (student + streak
record + latest daily stat). Ordering: total solved, then longest streak,
then current streak, all descending; username breaks remaining ties.

The full response is cached in-process for a short time so rapid
dashboard polling does not re-run the overview query. A refresh run
clears the cache.
"""

import logging
import math
from collections.abc import Sequence

from cachetools import TTLCache
from sqlalchemy.ext.asyncio import AsyncSession

from repositories.student_repository import StudentOverviewRow, StudentRepository
from schemas import (
    DifficultyStats,
    LeaderboardAnalytics,
    LeaderboardEntry,
    LeaderboardResponse,
)

logger = logging.getLogger(__name__)

MILESTONES: tuple[int, ...] = (50, 100, 200, 300, 500, 1000)

TOP_PERFORMERS = 3

_LOCAL_CACHE_TTL = 60  # seconds
_leaderboard_cache: TTLCache[str, LeaderboardResponse] = TTLCache(
    maxsize=1, ttl=_LOCAL_CACHE_TTL
)
_CACHE_KEY = "leaderboard"


def invalidate_leaderboard_cache() -> None:
    _leaderboard_cache.clear()


def reached_milestones(total_solved: int) -> list[int]:
    """Milestones at or below total_solved, ascending."""
    return [m for m in MILESTONES if total_solved >= m]


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _sort_key(entry: LeaderboardEntry) -> tuple[int, int, int, str]:
    return (
        -entry.total_solved,
        -entry.longest_streak,
        -entry.current_streak,
        entry.username,
    )


def build_leaderboard(rows: Sequence[StudentOverviewRow]) -> list[LeaderboardEntry]:
    """Rank overview rows. Students without any stats rank with zeros."""
    unranked: list[LeaderboardEntry] = []
    for row in rows:
        stat = row.latest_stat
        record = row.record
        unranked.append(
            LeaderboardEntry(
                rank=0,
                username=row.student.username,
                name=row.student.name,
                total_solved=stat.total_solved if stat else 0,
                easy=stat.easy_solved if stat else 0,
                medium=stat.medium_solved if stat else 0,
                hard=stat.hard_solved if stat else 0,
                ranking=stat.ranking if stat and stat.ranking else 0,
                current_streak=record.current_streak if record else 0,
                longest_streak=record.longest_streak if record else 0,
                last_activity_date=record.last_activity_date if record else None,
            )
        )

    unranked.sort(key=_sort_key)
    return [
        entry.model_copy(update={"rank": position})
        for position, entry in enumerate(unranked, start=1)
    ]


def _rating_bucket(rating: int) -> str:
    if rating <= 0:
        return "Unrated"
    if rating < 1400:
        return "Guardian (0-1399)"
    if rating < 1600:
        return "Knight (1400-1599)"
    return "Guardian+ (1600+)"


def calculate_analytics(
    entries: Sequence[LeaderboardEntry],
) -> LeaderboardAnalytics | None:
    """Aggregate a ranked leaderboard. Returns None for an empty cohort."""
    if not entries:
        return None

    total_users = len(entries)
    distribution = {
        "Unrated": 0,
        "Guardian (0-1399)": 0,
        "Knight (1400-1599)": 0,
        "Guardian+ (1600+)": 0,
    }
    for entry in entries:
        distribution[_rating_bucket(entry.ranking)] += 1

    return LeaderboardAnalytics(
        total_users=total_users,
        average_problems=_round_half_up(
            sum(e.total_solved for e in entries) / total_users
        ),
        average_rating=_round_half_up(sum(e.ranking for e in entries) / total_users),
        difficulty_stats=DifficultyStats(
            easy=sum(e.easy for e in entries),
            medium=sum(e.medium for e in entries),
            hard=sum(e.hard for e in entries),
        ),
        rating_distribution=distribution,
        top_performers=list(entries[:TOP_PERFORMERS]),
    )


async def get_leaderboard(db: AsyncSession) -> list[LeaderboardEntry]:
    rows = await StudentRepository(db).list_overview()
    return build_leaderboard(rows)


async def get_leaderboard_response(db: AsyncSession) -> LeaderboardResponse:
    """Leaderboard plus analytics, served from the short-lived cache if fresh."""
    cached = _leaderboard_cache.get(_CACHE_KEY)
    if cached is not None:
        return cached

    entries = await get_leaderboard(db)
    response = LeaderboardResponse(
        leaderboard=entries, analytics=calculate_analytics(entries)
    )
    _leaderboard_cache[_CACHE_KEY] = response
    logger.debug("leaderboard.cache.filled", extra={"entries": len(entries)})
    return response
