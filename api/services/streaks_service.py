"""Streak calculation and reconciliation for LeetCode submission calendars.

This is the only place streak math lives. It covers:
- Parsing the upstream submission calendar (day timestamp -> count)
- Longest streak, last active day and days inactive for a calendar
- Merging a fresh snapshot into the persisted record (high-water mark)
- Inactivity classification used by notifications and reports

Everything here is pure and synchronous; callers own I/O and locking.

Day keys are UTC-midnight Unix timestamps in seconds, as the upstream API
reports them. They are not re-aligned to local time.
"""

import json
import logging
from collections.abc import Mapping
from datetime import UTC, date, datetime

from schemas import ActivityRecordData, StreakSnapshot

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# Returned by days_inactive when there is no usable activity at all.
# Far outside any real day count so reports can sort and filter on it.
NEVER_ACTIVE_DAYS = 999

INACTIVE_THRESHOLD_DAYS = 3

# Dates before this come from malformed or zero timestamps (1970-01-01).
SANITY_FLOOR = date(2020, 1, 1)

SubmissionCalendar = dict[int, int]


def _utc_date(moment: datetime) -> date:
    """Calendar date of a datetime in UTC (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(UTC).date()


def parse_submission_calendar(
    raw: str | Mapping[object, object] | None,
) -> SubmissionCalendar:
    """Decode the upstream calendar into {day_timestamp: count}.

    Accepts the JSON text the API sends or an already-decoded mapping.
    Keys that are not integers are dropped and counts are clamped to >= 0.
    Undecodable text yields an empty calendar.
    """
    if raw is None:
        return {}

    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("calendar.decode.failed", extra={"length": len(raw)})
            return {}
        if not isinstance(decoded, dict):
            logger.warning(
                "calendar.decode.unexpected_type",
                extra={"type": type(decoded).__name__},
            )
            return {}
        raw = decoded

    calendar: SubmissionCalendar = {}
    for key, value in raw.items():
        try:
            timestamp = int(str(key))
            count = int(str(value))
        except ValueError:
            continue
        calendar[timestamp] = max(0, count)
    return calendar


def _active_timestamps(calendar: Mapping[int, int]) -> list[int]:
    """Timestamps with at least one submission, ascending."""
    return sorted(ts for ts, count in calendar.items() if count > 0)


def compute_longest_streak(
    calendar: Mapping[int, int], reported_current_streak: int = 0
) -> int:
    """Longest run of consecutive active days in the calendar.

    The upstream-reported current streak is a floor: the calendar may be
    truncated while the reported value reflects server-side state.

    Days are compared as whole-day gaps of the sorted timestamps:
    a gap of 1 extends the run, 0 (two keys on the same day) continues it
    without counting twice, anything larger starts a new run of 1.
    """
    floor = max(0, reported_current_streak)
    timestamps = _active_timestamps(calendar)
    if not timestamps:
        return floor

    longest = 1
    run = 1
    for previous, current in zip(timestamps, timestamps[1:]):
        day_gap = round((current - previous) / SECONDS_PER_DAY)
        if day_gap == 0:
            continue
        if day_gap == 1:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return max(longest, floor)


def last_active_day(
    calendar: Mapping[int, int], now: datetime | None = None
) -> date | None:
    """Date of the most recent active day, or None.

    None is also returned when that date is before SANITY_FLOOR or after
    today (UTC); both mean the timestamp is not trustworthy.
    """
    timestamps = _active_timestamps(calendar)
    if not timestamps:
        return None

    today = _utc_date(now or datetime.now(UTC))
    try:
        last_day = datetime.fromtimestamp(timestamps[-1], UTC).date()
    except (OverflowError, OSError, ValueError):
        return None

    if last_day < SANITY_FLOOR or last_day > today:
        return None
    return last_day


def days_since(last_day: date | None, now: datetime | None = None) -> int:
    """Whole UTC days between last_day and now, NEVER_ACTIVE_DAYS if unknown."""
    if last_day is None:
        return NEVER_ACTIVE_DAYS
    today = _utc_date(now or datetime.now(UTC))
    return max(0, (today - last_day).days)


def days_inactive(calendar: Mapping[int, int], now: datetime | None = None) -> int:
    """Days since the last active day in the calendar.

    Returns NEVER_ACTIVE_DAYS when the calendar has no usable activity.
    """
    now = now or datetime.now(UTC)
    return days_since(last_active_day(calendar, now), now)


def analyze_calendar(
    calendar: Mapping[int, int],
    reported_current_streak: int = 0,
    now: datetime | None = None,
) -> StreakSnapshot:
    """Compute a StreakSnapshot for one fetch.

    The current streak is the upstream-reported value; the calendar alone
    cannot tell whether today's submissions have been counted yet.
    """
    now = now or datetime.now(UTC)
    last_day = last_active_day(calendar, now)
    return StreakSnapshot(
        current_streak=max(0, reported_current_streak),
        longest_streak=compute_longest_streak(calendar, reported_current_streak),
        last_active_day=last_day,
        days_inactive=days_since(last_day, now),
    )


def reconcile(
    previous: ActivityRecordData | None,
    fresh: StreakSnapshot,
    *,
    username: str | None = None,
    today: date | None = None,
) -> ActivityRecordData:
    """Merge a fresh snapshot into the previously stored record.

    - current_streak: always the fresh value
    - longest_streak: never lower than what is on record
    - last_activity_date: fresh value, else the stored one, else today
      (first record for a student with no usable activity)

    Callers must hold the per-student lock between reading ``previous`` and
    writing the result.
    """
    if previous is not None:
        name = previous.username
        previous_longest = previous.longest_streak
        previous_last = previous.last_activity_date
    elif username is not None:
        name = username
        previous_longest = 0
        previous_last = None
    else:
        raise ValueError("username is required when there is no previous record")

    longest = max(fresh.longest_streak, previous_longest, fresh.current_streak)
    last_activity = (
        fresh.last_active_day
        or previous_last
        or today
        or datetime.now(UTC).date()
    )

    return ActivityRecordData(
        username=name,
        current_streak=fresh.current_streak,
        longest_streak=longest,
        last_activity_date=last_activity,
    )


def classify_inactive(
    record: ActivityRecordData | None,
    now: datetime | None = None,
    threshold_days: int = INACTIVE_THRESHOLD_DAYS,
) -> bool:
    """True when a student should be flagged as inactive.

    A student with no record, or no last activity date on record, counts
    as inactive ("never active").
    """
    if record is None or record.last_activity_date is None:
        return True
    return days_since(record.last_activity_date, now) >= threshold_days
