"""Alembic environment for the cohort tracker schema.

Migrations run over a synchronous psycopg2 connection (the app URL with
+asyncpg swapped out) and hold a Postgres advisory lock, so several app
instances starting together apply each revision once.
"""

from __future__ import annotations

import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import Connection, create_engine, text

# api/ must be importable when alembic is run from the command line
sys.path.insert(0, str(Path(__file__).parent.parent))

import models  # noqa: F401
from alembic import context
from core.config import get_settings
from core.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

logger = logging.getLogger("alembic.env")

MIGRATION_LOCK_KEY = 418263907
LOCK_WAIT = "120s"


def _sync_url() -> str:
    return get_settings().database_url.replace("+asyncpg", "+psycopg2")


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_sync_url())
    with engine.connect() as connection:
        # Session-level lock; a waiter gives up after LOCK_WAIT
        connection.execute(text(f"SET lock_timeout = '{LOCK_WAIT}'"))
        connection.execute(
            text("SELECT pg_advisory_lock(:key)"), {"key": MIGRATION_LOCK_KEY}
        )
        connection.commit()
        logger.info("migrations.lock.acquired")
        try:
            _apply(connection)
        finally:
            if connection.in_transaction():
                connection.rollback()
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"), {"key": MIGRATION_LOCK_KEY}
            )
            connection.commit()
            logger.info("migrations.lock.released")
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
