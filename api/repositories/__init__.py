"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services and routes
free of SQL. This separation provides:
- Single source of truth for database operations
- Easier testing (repositories can be mocked)
- Reusable queries across the refresh pipeline and the API
"""

from repositories.activity_record_repository import ActivityRecordRepository
from repositories.daily_stat_repository import DailyStatRepository
from repositories.notification_repository import NotificationRepository
from repositories.student_repository import StudentOverviewRow, StudentRepository
from repositories.utils import log_slow_query

__all__ = [
    "ActivityRecordRepository",
    "DailyStatRepository",
    "NotificationRepository",
    "StudentOverviewRow",
    "StudentRepository",
    "log_slow_query",
]
