"""Refresh pipeline: fetch each student's profile and update their records.

For one student a refresh is:
    fetch profile -> analyze calendar -> (per-student lock)
    read previous record -> reconcile -> write record, daily stat and
    milestone notifications -> commit

A batch runs per-student jobs with bounded concurrency. A failure for
one student is logged and counted in the summary; it never fails the
batch and never touches that student's stored record.

ARCHITECTURE:
- A background task (started in main.py lifespan) calls refresh_loop(),
  which runs refresh_all() and then inactive detection on a timer.
- The CLI calls refresh_all() directly for one-off runs.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import UTC, datetime

import httpx
from circuitbreaker import CircuitBreakerError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import RetryError

from core.config import get_settings
from repositories.activity_record_repository import ActivityRecordRepository
from repositories.daily_stat_repository import DailyStatRepository
from repositories.notification_repository import NotificationRepository
from repositories.student_repository import StudentRepository
from schemas import (
    InactiveDetectionResult,
    RefreshOutcome,
    RefreshStatus,
    RefreshSummary,
)
from services.inactivity_service import detect_and_notify_inactive
from services.leaderboard_service import (
    invalidate_leaderboard_cache,
    reached_milestones,
)
from services.leetcode_client import LeetCodeAPIError, fetch_profile
from services.streaks_service import analyze_calendar, reconcile

logger = logging.getLogger(__name__)

# Failures that are expected from upstream or the store and only fail
# the student being refreshed.
REFRESH_ERRORS: tuple[type[Exception], ...] = (
    LeetCodeAPIError,
    httpx.HTTPError,
    CircuitBreakerError,
    RetryError,
    SQLAlchemyError,
)


class UserLockRegistry:
    """One asyncio.Lock per username.

    Shared by every refresh in the process so that two jobs for the same
    student never interleave their read-reconcile-write sequence.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, username: str) -> asyncio.Lock:
        lock = self._locks.get(username)
        if lock is None:
            lock = self._locks[username] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


async def refresh_user(
    session_maker: async_sessionmaker[AsyncSession],
    username: str,
    *,
    locks: UserLockRegistry,
    now: datetime | None = None,
) -> RefreshOutcome:
    """Refresh one student. Never raises for expected upstream/store errors."""
    now = now or datetime.now(UTC)
    today = now.astimezone(UTC).date()

    try:
        profile = await fetch_profile(username)
    except REFRESH_ERRORS as e:
        logger.warning(
            "refresh.user.fetch_failed",
            extra={"username": username, "error_type": type(e).__name__},
        )
        return RefreshOutcome(
            username=username,
            status=RefreshStatus.FAILED,
            error=str(e) or type(e).__name__,
        )

    if profile is None:
        return RefreshOutcome(username=username, status=RefreshStatus.NOT_FOUND)

    snapshot = analyze_calendar(
        profile.submission_calendar, profile.reported_streak, now
    )

    try:
        async with locks.lock(username):
            async with session_maker() as session:
                await StudentRepository(session).ensure_exists(username)
                records = ActivityRecordRepository(session)
                previous = await records.get_for_update(username)
                stored = await records.put(
                    reconcile(previous, snapshot, username=username, today=today)
                )
                await DailyStatRepository(session).upsert_for_day(
                    username, profile, today, snapshot.last_active_day
                )
                notifications = NotificationRepository(session)
                for milestone in reached_milestones(profile.total_solved):
                    await notifications.add_milestone(username, milestone, on=today)
                await session.commit()
    except SQLAlchemyError as e:
        logger.exception("refresh.user.store_failed", extra={"username": username})
        return RefreshOutcome(
            username=username, status=RefreshStatus.FAILED, error=type(e).__name__
        )

    logger.info(
        "refresh.user.completed",
        extra={
            "username": username,
            "current_streak": stored.current_streak,
            "longest_streak": stored.longest_streak,
            "total_solved": profile.total_solved,
        },
    )
    return RefreshOutcome(
        username=username,
        status=RefreshStatus.SUCCEEDED,
        record=stored,
        total_solved=profile.total_solved,
    )


async def refresh_all(
    session_maker: async_sessionmaker[AsyncSession],
    usernames: Iterable[str] | None = None,
    *,
    locks: UserLockRegistry | None = None,
    concurrency: int | None = None,
    now: datetime | None = None,
) -> RefreshSummary:
    """Refresh many students (all on the roster by default).

    At most ``concurrency`` students are in flight at once.
    """
    started_at = datetime.now(UTC)
    locks = locks or UserLockRegistry()
    concurrency = concurrency or get_settings().refresh_concurrency

    if usernames is None:
        async with session_maker() as session:
            targets = await StudentRepository(session).list_usernames()
    else:
        # Deduplicate, keep order
        targets = list(dict.fromkeys(u.strip() for u in usernames if u.strip()))

    semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(username: str) -> RefreshOutcome:
        async with semaphore:
            return await refresh_user(session_maker, username, locks=locks, now=now)

    results = await asyncio.gather(
        *(_bounded(u) for u in targets), return_exceptions=True
    )

    summary = RefreshSummary(started_at=started_at, finished_at=started_at)
    for username, result in zip(targets, results, strict=True):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error(
                "refresh.user.failed",
                exc_info=result,
                extra={"username": username},
            )
            summary.failed[username] = f"{type(result).__name__}: {result}"
        elif result.status is RefreshStatus.SUCCEEDED:
            summary.succeeded.append(username)
        elif result.status is RefreshStatus.NOT_FOUND:
            summary.not_found.append(username)
        else:
            summary.failed[username] = result.error or "unknown error"

    summary.finished_at = datetime.now(UTC)
    if summary.succeeded:
        invalidate_leaderboard_cache()

    logger.info(
        "refresh.batch.completed",
        extra={
            "total": len(targets),
            "success_count": summary.success_count,
            "error_count": summary.error_count,
            "duration_ms": round(
                (summary.finished_at - started_at).total_seconds() * 1000, 2
            ),
        },
    )
    return summary


async def run_inactive_detection(
    session_maker: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> InactiveDetectionResult:
    async with session_maker() as session:
        result = await detect_and_notify_inactive(session, now)
        await session.commit()
    return result


async def refresh_loop(
    session_maker: async_sessionmaker[AsyncSession],
    interval_seconds: float | None = None,
) -> None:
    """Background loop that refreshes every student on a timer.

    Runs forever until cancelled. Failures are logged but do not stop
    the loop; stored records are left as they were.
    """
    interval = interval_seconds or get_settings().refresh_interval_seconds
    locks = UserLockRegistry()
    while True:
        try:
            await refresh_all(session_maker, locks=locks)
            await run_inactive_detection(session_maker)
        except Exception:
            logger.exception("refresh.background.failed")
        await asyncio.sleep(interval)
