"""SQLAlchemy models for cohort LeetCode activity tracking."""

from datetime import UTC, date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def today() -> date:
    """Return current UTC date."""
    return datetime.now(UTC).date()


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Student(TimestampMixin, Base):
    """A cohort member tracked by LeetCode username."""

    __tablename__ = "students"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    roll_no: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    batch_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    daily_stats: Mapped[list["DailyStat"]] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
    )
    activity_record: Mapped["ActivityRecord | None"] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
        uselist=False,
    )
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="student",
        cascade="all, delete-orphan",
    )


class DailyStat(Base):
    """Per-day snapshot of a student's solved counts.

    One row per (username, stat_date); a later refresh on the same day
    overwrites the earlier snapshot.
    """

    __tablename__ = "daily_stats"
    __table_args__ = (
        UniqueConstraint("username", "stat_date", name="uq_daily_stats_username_date"),
        Index("ix_daily_stats_username_date", "username", "stat_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("students.username", ondelete="CASCADE"),
        nullable=False,
    )
    stat_date: Mapped[date] = mapped_column(Date, nullable=False, default=today)
    total_solved: Mapped[int] = mapped_column(Integer, default=0)
    easy_solved: Mapped[int] = mapped_column(Integer, default=0)
    medium_solved: Mapped[int] = mapped_column(Integer, default=0)
    hard_solved: Mapped[int] = mapped_column(Integer, default=0)
    ranking: Mapped[int] = mapped_column(Integer, default=0)
    last_submission_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    student: Mapped["Student"] = relationship(back_populates="daily_stats")


class ActivityRecord(Base):
    """Persisted streak state, one row per student.

    longest_streak is a high-water mark: writes go through
    ActivityRecordRepository.put, which never lowers it.
    """

    __tablename__ = "activity_records"

    username: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("students.username", ondelete="CASCADE"),
        primary_key=True,
    )
    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    student: Mapped["Student"] = relationship(back_populates="activity_record")


class NotificationType(str, PyEnum):
    """Kind of dashboard notification."""

    INACTIVE_WARNING = "inactive_warning"
    MILESTONE = "milestone"


class Notification(Base):
    """Dashboard notification about a student.

    dedupe_key makes repeated detection runs idempotent: inactive warnings
    use the UTC day, milestones use the milestone value.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "username",
            "notification_type",
            "dedupe_key",
            name="uq_notifications_dedupe",
        ),
        Index("ix_notifications_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("students.username", ondelete="CASCADE"),
        nullable=False,
    )
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            name="notification_type",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    dedupe_key: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    notified_on: Mapped[date] = mapped_column(Date, nullable=False, default=today)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    student: Mapped["Student"] = relationship(back_populates="notifications")
