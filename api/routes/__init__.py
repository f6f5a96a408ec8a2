"""API route modules."""

from .health_routes import router as health_router
from .leaderboard_routes import router as leaderboard_router
from .students_routes import router as students_router

__all__ = [
    "health_router",
    "leaderboard_router",
    "students_router",
]
