"""LeetCode GraphQL client used by the refresh pipeline.

Fetches the public profile of one user: solved counts per difficulty,
global ranking, the reported current streak and the submission calendar.

SCALABILITY:
- Circuit breaker fails fast when LeetCode is unavailable (5 failures -> 60s)
- Retry with exponential backoff + jitter for transient failures
  (attempts bounded by settings.leetcode_max_attempts)
- Connection pooling via shared httpx.AsyncClient
"""

import asyncio
import logging
from typing import Any

import httpx
from circuitbreaker import circuit
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.config import get_settings
from schemas import LeetCodeProfile
from services.streaks_service import parse_submission_calendar

logger = logging.getLogger(__name__)

PROFILE_QUERY = """
query getUserProfile($username: String!) {
  matchedUser(username: $username) {
    username
    profile {
      realName
      userAvatar
      ranking
    }
    submitStatsGlobal {
      acSubmissionNum {
        difficulty
        count
      }
    }
    userCalendar {
      streak
      totalActiveDays
      submissionCalendar
    }
  }
}
"""

# Shared HTTP client for LeetCode requests (connection pooling)
_leetcode_http_client: httpx.AsyncClient | None = None
_leetcode_client_lock = asyncio.Lock()


class LeetCodeAPIError(Exception):
    """Raised when LeetCode returns an unusable response (not retried)."""


class LeetCodeServerError(LeetCodeAPIError):
    """Raised when LeetCode returns a 5xx error or 429 (retriable)."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


def _parse_retry_after(header_value: str | None) -> float | None:
    """Parse Retry-After header into seconds."""
    if not header_value:
        return None
    try:
        return float(header_value)
    except ValueError:
        return None


def _wait_with_retry_after(retry_state: RetryCallState) -> float:
    """Wait respecting Retry-After header, else exponential backoff."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, LeetCodeServerError) and exc.retry_after:
        return min(exc.retry_after, 60.0)
    return wait_exponential_jitter(initial=0.5, max=10)(retry_state)


def _stop_after_configured_attempts(retry_state: RetryCallState) -> bool:
    return stop_after_attempt(get_settings().leetcode_max_attempts)(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "leetcode.fetch.retry",
        extra={
            "attempt": retry_state.attempt_number,
            "error_type": type(exc).__name__ if exc else None,
        },
    )


# Exceptions that should trigger retry and circuit breaker
RETRIABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.RequestError,
    httpx.TimeoutException,
    LeetCodeServerError,
)


async def _get_leetcode_client() -> httpx.AsyncClient:
    """Get or create the shared HTTP client for LeetCode requests."""
    global _leetcode_http_client

    if _leetcode_http_client is not None and not _leetcode_http_client.is_closed:
        return _leetcode_http_client

    async with _leetcode_client_lock:
        # Double-check after acquiring lock
        if _leetcode_http_client is not None and not _leetcode_http_client.is_closed:
            return _leetcode_http_client

        settings = get_settings()
        _leetcode_http_client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            follow_redirects=True,
            headers={
                "User-Agent": settings.leetcode_user_agent,
                "Referer": "https://leetcode.com",
            },
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )
        return _leetcode_http_client


async def close_leetcode_client() -> None:
    """Close the shared LeetCode HTTP client (called on application shutdown)."""
    global _leetcode_http_client
    if _leetcode_http_client is not None and not _leetcode_http_client.is_closed:
        await _leetcode_http_client.aclose()
    _leetcode_http_client = None


def _solved_by_difficulty(matched_user: dict[str, Any]) -> dict[str, int]:
    stats = (matched_user.get("submitStatsGlobal") or {}).get("acSubmissionNum") or []
    solved: dict[str, int] = {}
    for entry in stats:
        difficulty = entry.get("difficulty")
        if isinstance(difficulty, str):
            solved[difficulty.lower()] = max(0, int(entry.get("count") or 0))
    return solved


def parse_profile(username: str, matched_user: dict[str, Any]) -> LeetCodeProfile:
    """Build a LeetCodeProfile from the ``matchedUser`` payload.

    The profile keeps the username it was requested under. LeetCode matches
    usernames case-insensitively and echoes its own spelling, which may not
    be the one on the roster.
    """
    profile = matched_user.get("profile") or {}
    calendar = matched_user.get("userCalendar") or {}
    solved = _solved_by_difficulty(matched_user)

    return LeetCodeProfile(
        username=username,
        real_name=profile.get("realName") or None,
        avatar_url=profile.get("userAvatar") or None,
        ranking=int(profile.get("ranking") or 0),
        easy_solved=solved.get("easy", 0),
        medium_solved=solved.get("medium", 0),
        hard_solved=solved.get("hard", 0),
        reported_streak=max(0, int(calendar.get("streak") or 0)),
        total_active_days=max(0, int(calendar.get("totalActiveDays") or 0)),
        submission_calendar=parse_submission_calendar(
            calendar.get("submissionCalendar")
        ),
    )


@circuit(
    failure_threshold=5,
    recovery_timeout=60,
    expected_exception=RETRIABLE_EXCEPTIONS,
    name="leetcode_api_circuit",
)
@retry(
    stop=_stop_after_configured_attempts,
    wait=_wait_with_retry_after,
    retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
    before_sleep=_log_retry,
    reraise=True,
)
async def _post_profile_query(username: str) -> dict[str, Any]:
    """Internal: POST the profile query with retry. Use fetch_profile()."""
    settings = get_settings()
    client = await _get_leetcode_client()
    response = await client.post(
        settings.leetcode_graphql_url,
        json={"query": PROFILE_QUERY, "variables": {"username": username}},
    )

    if response.status_code == 429 or response.status_code >= 500:
        raise LeetCodeServerError(
            f"LeetCode returned {response.status_code}",
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if response.status_code != 200:
        raise LeetCodeAPIError(f"LeetCode returned {response.status_code}")

    try:
        payload = response.json()
    except ValueError as e:
        raise LeetCodeAPIError("LeetCode returned invalid JSON") from e
    if not isinstance(payload, dict):
        raise LeetCodeAPIError("LeetCode returned an unexpected payload")
    return payload


async def fetch_profile(username: str) -> LeetCodeProfile | None:
    """Fetch one user's profile.

    Returns None when LeetCode has no such user. Raises LeetCodeAPIError,
    httpx.HTTPError or CircuitBreakerError when the profile could not be
    fetched; the caller decides whether that fails anything beyond this user.
    """
    payload = await _post_profile_query(username)

    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise LeetCodeAPIError(f"Unexpected data section for {username}")
    matched_user = data.get("matchedUser")
    if matched_user is None:
        if payload.get("errors") and not data:
            raise LeetCodeAPIError(f"GraphQL errors for {username}")
        logger.info("leetcode.user.not_found", extra={"username": username})
        return None

    try:
        return parse_profile(username, matched_user)
    except (AttributeError, TypeError, ValueError) as e:
        raise LeetCodeAPIError(f"Malformed profile for {username}") from e
