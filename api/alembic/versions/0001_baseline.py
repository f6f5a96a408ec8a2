"""baseline cohort tracker schema

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Students, per-day solved-count snapshots, streak records and
notifications.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Students table - LeetCode username as PK
    op.create_table(
        "students",
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("roll_no", sa.String(255), nullable=True),
        sa.Column("batch_year", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("username"),
    )
    op.create_index("ix_students_roll_no", "students", ["roll_no"])

    op.create_table(
        "daily_stats",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("stat_date", sa.Date(), nullable=False),
        sa.Column("total_solved", sa.Integer(), nullable=True),
        sa.Column("easy_solved", sa.Integer(), nullable=True),
        sa.Column("medium_solved", sa.Integer(), nullable=True),
        sa.Column("hard_solved", sa.Integer(), nullable=True),
        sa.Column("ranking", sa.Integer(), nullable=True),
        sa.Column("last_submission_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["username"], ["students.username"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "username", "stat_date", name="uq_daily_stats_username_date"
        ),
    )
    op.create_index(
        "ix_daily_stats_username_date", "daily_stats", ["username", "stat_date"]
    )

    # One streak record per student; longest_streak only ever grows
    op.create_table(
        "activity_records",
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("longest_streak", sa.Integer(), nullable=False),
        sa.Column("last_activity_date", sa.Date(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["username"], ["students.username"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("username"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column(
            "notification_type",
            sa.Enum(
                "inactive_warning",
                "milestone",
                name="notification_type",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("dedupe_key", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        sa.Column("notified_on", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["username"], ["students.username"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "username",
            "notification_type",
            "dedupe_key",
            name="uq_notifications_dedupe",
        ),
    )
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("activity_records")
    op.drop_index("ix_daily_stats_username_date", table_name="daily_stats")
    op.drop_table("daily_stats")
    op.drop_index("ix_students_roll_no", table_name="students")
    op.drop_table("students")
