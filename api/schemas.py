"""Pydantic schemas for API responses and service results."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from models import NotificationType

# =============================================================================
# Streak / activity
# =============================================================================


class StreakSnapshot(BaseModel):
    """Streak state computed from one upstream fetch. Never persisted directly."""

    model_config = ConfigDict(frozen=True)

    current_streak: int = Field(ge=0)
    longest_streak: int = Field(ge=0)
    last_active_day: date | None = None
    days_inactive: int = Field(ge=0)


class ActivityRecordData(BaseModel):
    """Persisted per-student streak record (read from / written to the store)."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    username: str
    current_streak: int = Field(ge=0)
    longest_streak: int = Field(ge=0)
    last_activity_date: date | None = None
    updated_at: datetime | None = None


# =============================================================================
# Upstream
# =============================================================================


class LeetCodeProfile(BaseModel):
    """Subset of the LeetCode profile used by the refresh pipeline."""

    username: str
    real_name: str | None = None
    avatar_url: str | None = None
    ranking: int = 0
    easy_solved: int = 0
    medium_solved: int = 0
    hard_solved: int = 0
    reported_streak: int = 0
    total_active_days: int = 0
    submission_calendar: dict[int, int] = Field(default_factory=dict)

    @computed_field
    @property
    def total_solved(self) -> int:
        return self.easy_solved + self.medium_solved + self.hard_solved


# =============================================================================
# Refresh pipeline
# =============================================================================


class RefreshStatus(str, Enum):
    """Per-student outcome of a refresh."""

    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class RefreshOutcome(BaseModel):
    """Result of refreshing a single student."""

    username: str
    status: RefreshStatus
    record: ActivityRecordData | None = None
    total_solved: int | None = None
    error: str | None = None


class RefreshSummary(BaseModel):
    """Batch summary for one refresh run."""

    started_at: datetime
    finished_at: datetime
    succeeded: list[str] = Field(default_factory=list)
    not_found: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @computed_field
    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.not_found) + len(self.failed)


# =============================================================================
# Inactivity
# =============================================================================


class InactiveStudent(BaseModel):
    """A student classified as inactive."""

    username: str
    name: str | None = None
    email: str | None = None
    roll_no: str | None = None
    total_solved: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    days_inactive: int

    @computed_field
    @property
    def never_active(self) -> bool:
        return self.last_activity_date is None


class InactiveDetectionResult(BaseModel):
    """Outcome of one inactive-detection run."""

    inactive_count: int
    notified: list[str] = Field(default_factory=list)
    already_notified: list[str] = Field(default_factory=list)


# =============================================================================
# Leaderboard
# =============================================================================


class LeaderboardEntry(BaseModel):
    """One ranked row of the cohort leaderboard."""

    rank: int
    username: str
    name: str | None = None
    total_solved: int = 0
    easy: int = 0
    medium: int = 0
    hard: int = 0
    ranking: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None


class DifficultyStats(BaseModel):
    easy: int = 0
    medium: int = 0
    hard: int = 0


class LeaderboardAnalytics(BaseModel):
    """Aggregates over a leaderboard."""

    total_users: int
    average_problems: int
    average_rating: int
    difficulty_stats: DifficultyStats
    rating_distribution: dict[str, int]
    top_performers: list[LeaderboardEntry]


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardEntry]
    analytics: LeaderboardAnalytics | None = None


class StudentActivity(BaseModel):
    """Dashboard view of a single student's activity."""

    username: str
    name: str | None = None
    total_solved: int = 0
    easy: int = 0
    medium: int = 0
    hard: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    days_inactive: int
    is_inactive: bool
    stats_date: date | None = None


class RosterEntry(BaseModel):
    username: str
    name: str | None = None
    roll_no: str | None = None
    email: str | None = None
    batch_year: int | None = None
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None


class DailyStatSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stat_date: date
    total_solved: int
    easy_solved: int
    medium_solved: int
    hard_solved: int
    ranking: int
    last_submission_date: date | None = None


class WipeResult(BaseModel):
    """Rows removed by a cohort-wide data wipe."""

    students: int
    activity_records: int


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    notification_type: NotificationType
    message: str
    is_read: bool
    created_at: datetime


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(HealthResponse):
    database: bool
    pool: PoolStatusResponse | None = None
