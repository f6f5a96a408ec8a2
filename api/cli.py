#!/usr/bin/env python3
"""CLI for cohort tracker management tasks.

Usage:
    python -m cli <command>

Commands:
    refresh [USERNAME ...]   Refresh LeetCode data (whole roster by default)
    detect-inactive          Flag inactive students and create today's warnings
    add-student              Add or update a student on the roster
    list-students            List the roster with current and longest streaks
    search QUERY             Find a student by username, name or roll number
    remove-student USERNAME  Remove a student and all their data
    history USERNAME         Show daily solved-count snapshots
    wipe-data --yes          Delete every student and all recorded data
    create-tables            Create tables from models (local development)
    migrate                  Run database migrations
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logger import configure_logging

logger = logging.getLogger(__name__)


async def _with_session_maker[T](
    action: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
) -> T:
    """Run an action against a short-lived engine, disposing it afterwards."""
    from core.database import create_engine, create_session_maker, dispose_engine

    engine = create_engine()
    try:
        return await action(create_session_maker(engine))
    finally:
        await dispose_engine(engine)


def cmd_refresh(usernames: list[str]) -> int:
    """Refresh students and print a summary. Non-zero exit if any failed."""
    from services.leetcode_client import close_leetcode_client
    from services.refresh_service import refresh_all

    async def _run(session_maker: async_sessionmaker[AsyncSession]):
        try:
            return await refresh_all(session_maker, usernames or None)
        finally:
            await close_leetcode_client()

    summary = asyncio.run(_with_session_maker(_run))
    logger.info(
        "Refreshed %d students (%d not found, %d failed)",
        summary.success_count,
        len(summary.not_found),
        len(summary.failed),
    )
    for username, error in summary.failed.items():
        logger.warning("  %s: %s", username, error)
    return 0 if not summary.failed else 1


def cmd_detect_inactive() -> int:
    from services.refresh_service import run_inactive_detection

    result = asyncio.run(_with_session_maker(run_inactive_detection))
    logger.info(
        "%d inactive students, %d newly notified",
        result.inactive_count,
        len(result.notified),
    )
    return 0


def cmd_add_student(args: argparse.Namespace) -> int:
    from services.students_service import add_student

    async def _run(session_maker: async_sessionmaker[AsyncSession]) -> str:
        async with session_maker() as session:
            student = await add_student(
                session,
                args.username,
                email=args.email,
                name=args.name,
                roll_no=args.roll_no,
                batch_year=args.batch_year,
            )
            await session.commit()
            return student.username

    try:
        username = asyncio.run(_with_session_maker(_run))
    except ValueError as e:
        logger.error("Invalid student: %s", e)
        return 1
    logger.info("Student %s saved", username)
    return 0


def cmd_list_students() -> int:
    from services.students_service import list_students

    async def _run(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            return await list_students(session)

    entries = asyncio.run(_with_session_maker(_run))
    for entry in entries:
        logger.info(
            "%-24s %-24s %-12s current=%d longest=%d last=%s",
            entry.username,
            entry.name or "-",
            entry.roll_no or "-",
            entry.current_streak,
            entry.longest_streak,
            entry.last_activity_date or "never",
        )
    logger.info("%d students on the roster", len(entries))
    return 0


def cmd_search(query: str) -> int:
    """Print the best roster match. Exit 1 when nothing matches."""
    from services.students_service import find_student

    async def _run(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            return await find_student(session, query)

    try:
        student = asyncio.run(_with_session_maker(_run))
    except ValueError as e:
        logger.error("Invalid search: %s", e)
        return 1
    if student is None:
        logger.info("No student matches %r", query)
        return 1
    logger.info(
        "%s (name: %s, roll no: %s, email: %s)",
        student.username,
        student.name or "-",
        student.roll_no or "-",
        student.email or "-",
    )
    return 0


def cmd_remove_student(username: str) -> int:
    from services.students_service import StudentNotFoundError, remove_student

    async def _run(session_maker: async_sessionmaker[AsyncSession]) -> None:
        async with session_maker() as session:
            await remove_student(session, username)
            await session.commit()

    try:
        asyncio.run(_with_session_maker(_run))
    except StudentNotFoundError as e:
        logger.error("%s", e)
        return 1
    logger.info("Student %s removed", username)
    return 0


def cmd_history(username: str, limit: int) -> int:
    from services.students_service import StudentNotFoundError, get_stat_history

    async def _run(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            return await get_stat_history(session, username, limit)

    try:
        history = asyncio.run(_with_session_maker(_run))
    except StudentNotFoundError as e:
        logger.error("%s", e)
        return 1
    for snap in history:
        logger.info(
            "%s total=%d (E%d/M%d/H%d) ranking=%d",
            snap.stat_date,
            snap.total_solved,
            snap.easy_solved,
            snap.medium_solved,
            snap.hard_solved,
            snap.ranking,
        )
    if not history:
        logger.info("No snapshots recorded for %s yet", username)
    return 0


def cmd_wipe_data(confirmed: bool) -> int:
    """Delete the whole roster and everything recorded for it."""
    from services.students_service import wipe_cohort_data

    if not confirmed:
        logger.error("Refusing to wipe cohort data without --yes")
        return 1

    async def _run(session_maker: async_sessionmaker[AsyncSession]):
        async with session_maker() as session:
            result = await wipe_cohort_data(session)
            await session.commit()
            return result

    result = asyncio.run(_with_session_maker(_run))
    logger.info(
        "Removed %d students and %d activity records",
        result.students,
        result.activity_records,
    )
    return 0


def cmd_create_tables() -> int:
    """Create tables from model metadata (create_all never alters tables)."""
    from core.database import create_engine, create_tables, dispose_engine

    async def _run() -> None:
        engine = create_engine()
        try:
            await create_tables(engine)
        finally:
            await dispose_engine(engine)

    asyncio.run(_run())
    return 0


def cmd_migrate(target: str) -> int:
    """Upgrade the schema to ``target`` (a revision id or "head")."""
    from alembic import command
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # alembic.ini uses a relative path; pin it so any cwd works
    cfg.set_main_option("script_location", str(api_dir / "alembic"))

    logger.info("migrations.started", extra={"target": target})
    command.upgrade(cfg, target)
    logger.info("migrations.applied", extra={"target": target})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cohort tracker CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    refresh = subparsers.add_parser("refresh", help="Refresh LeetCode data")
    refresh.add_argument(
        "usernames", nargs="*", help="Usernames to refresh (default: all)"
    )

    subparsers.add_parser(
        "detect-inactive",
        help="Flag inactive students and create today's warnings",
    )

    add = subparsers.add_parser("add-student", help="Add or update a student")
    add.add_argument("username")
    add.add_argument("email")
    add.add_argument("--name")
    add.add_argument("--roll-no", dest="roll_no")
    add.add_argument("--batch-year", dest="batch_year", type=int)

    subparsers.add_parser("list-students", help="List the roster with streaks")

    search = subparsers.add_parser(
        "search", help="Find a student by username, name or roll number"
    )
    search.add_argument("query")

    remove = subparsers.add_parser(
        "remove-student", help="Remove a student and all their data"
    )
    remove.add_argument("username")

    history = subparsers.add_parser(
        "history", help="Show a student's daily solved-count snapshots"
    )
    history.add_argument("username")
    history.add_argument("--limit", type=int, default=30)

    wipe = subparsers.add_parser(
        "wipe-data", help="Delete every student and all recorded data"
    )
    wipe.add_argument(
        "--yes", action="store_true", help="Confirm the wipe (required)"
    )

    subparsers.add_parser(
        "create-tables",
        help="Create tables from models (local development)",
    )

    migrate = subparsers.add_parser("migrate", help="Run database migrations")
    migrate.add_argument(
        "target",
        nargs="?",
        default="head",
        help="Target revision (default: head)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging()

    if args.command == "refresh":
        return cmd_refresh(args.usernames)
    elif args.command == "detect-inactive":
        return cmd_detect_inactive()
    elif args.command == "add-student":
        return cmd_add_student(args)
    elif args.command == "list-students":
        return cmd_list_students()
    elif args.command == "search":
        return cmd_search(args.query)
    elif args.command == "remove-student":
        return cmd_remove_student(args.username)
    elif args.command == "history":
        return cmd_history(args.username, args.limit)
    elif args.command == "wipe-data":
        return cmd_wipe_data(args.yes)
    elif args.command == "create-tables":
        return cmd_create_tables()
    elif args.command == "migrate":
        return cmd_migrate(args.target)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
