"""Helpers shared by the repository classes."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Time a repository coroutine; warn when slow, log and re-raise on error.

        @log_slow_query("get_activity_record")
        async def get(self, username: str) -> ActivityRecordData | None: ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def timed(*args: P.args, **kwargs: P.kwargs) -> R:
            started = time.perf_counter()

            def elapsed_ms() -> float:
                return round((time.perf_counter() - started) * 1000, 2)

            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger.error(
                    "db.query.failed",
                    db_operation=operation_name,
                    db_duration_ms=elapsed_ms(),
                    db_error_type=type(exc).__name__,
                )
                raise
            duration = elapsed_ms()
            if duration > SLOW_QUERY_THRESHOLD_MS:
                logger.warning(
                    "db.query.slow",
                    db_operation=operation_name,
                    db_duration_ms=duration,
                )
            return result

        return timed

    return decorator


async def upsert_on_conflict[T](
    db: AsyncSession,
    model: type[T],
    values: dict[str, Any],
    index_elements: list[str],
    update_fields: list[str],
    *,
    set_overrides: dict[str, Any] | None = None,
    returning: bool = False,
) -> T | None:
    """INSERT ... ON CONFLICT (index_elements) DO UPDATE.

    ``update_fields`` are copied from ``values`` on conflict; ``set_overrides``
    maps columns to SQL expressions instead (``func.greatest(...)`` for
    high-water marks). ``onupdate`` hooks do not fire here, so callers put
    ``updated_at`` in both ``values`` and ``update_fields`` themselves.
    The caller commits.
    """
    update_set = {name: values[name] for name in update_fields if name in values}
    update_set.update(set_overrides or {})
    if not update_set:
        raise ValueError(
            f"nothing to update on conflict: update_fields={update_fields}, "
            f"values keys={sorted(values)}"
        )

    stmt = pg_insert(model).values(**values).on_conflict_do_update(
        index_elements=index_elements, set_=update_set
    )
    if not returning:
        await db.execute(stmt)
        return None
    # Overwrite any copy of the row already loaded in this session
    stmt = stmt.returning(model).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()
