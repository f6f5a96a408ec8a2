"""Tests for the LeetCode GraphQL client.

Upstream responses are served by httpx.MockTransport; retry waits are
disabled and the circuit breaker is reset between tests.
"""

import json
from collections.abc import Callable
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from circuitbreaker import STATE_CLOSED, CircuitBreakerMonitor
from tenacity import wait_none

import services.leetcode_client as leetcode_client
from services.leetcode_client import (
    PROFILE_QUERY,
    LeetCodeAPIError,
    LeetCodeServerError,
    _parse_retry_after,
    close_leetcode_client,
    fetch_profile,
    parse_profile,
)
from tests.factories import day_timestamp

pytestmark = pytest.mark.unit


def _matched_user(**overrides) -> dict:
    user = {
        "username": "alice",
        "profile": {
            "realName": "Alice A",
            "userAvatar": "https://assets.leetcode.com/alice.png",
            "ranking": 1234,
        },
        "submitStatsGlobal": {
            "acSubmissionNum": [
                {"difficulty": "All", "count": 60},
                {"difficulty": "Easy", "count": 30},
                {"difficulty": "Medium", "count": 25},
                {"difficulty": "Hard", "count": 5},
            ]
        },
        "userCalendar": {
            "streak": 4,
            "totalActiveDays": 80,
            "submissionCalendar": json.dumps(
                {str(day_timestamp(date(2025, 1, 1))): 2}
            ),
        },
    }
    user.update(overrides)
    return user


@pytest.fixture(autouse=True)
def _fast_retries():
    """Skip backoff waits so retry tests run instantly."""
    retrying = leetcode_client._post_profile_query.retry
    original = retrying.wait
    retrying.wait = wait_none()
    yield
    retrying.wait = original


@pytest.fixture(autouse=True)
def _reset_circuit():
    yield
    breaker = CircuitBreakerMonitor.get("leetcode_api_circuit")
    if breaker is not None:
        breaker._failure_count = 0
        breaker._state = STATE_CLOSED


@pytest.fixture
async def _reset_leetcode_client():
    """Reset the module-level client between tests."""
    yield
    await close_leetcode_client()


def _serve(handler: Callable[[httpx.Request], httpx.Response]):
    """Patch the shared client with one backed by a MockTransport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return patch(
        "services.leetcode_client._get_leetcode_client",
        AsyncMock(return_value=client),
    )


class TestParseProfile:
    def test_parses_all_fields(self):
        profile = parse_profile("alice", _matched_user())

        assert profile.username == "alice"
        assert profile.real_name == "Alice A"
        assert profile.ranking == 1234
        assert (profile.easy_solved, profile.medium_solved, profile.hard_solved) == (
            30,
            25,
            5,
        )
        assert profile.total_solved == 60
        assert profile.reported_streak == 4
        assert profile.total_active_days == 80
        assert profile.submission_calendar == {day_timestamp(date(2025, 1, 1)): 2}

    def test_missing_sections_default_to_zero(self):
        profile = parse_profile(
            "bob",
            {
                "username": "bob",
                "profile": None,
                "submitStatsGlobal": None,
                "userCalendar": None,
            },
        )
        assert profile.total_solved == 0
        assert profile.ranking == 0
        assert profile.reported_streak == 0
        assert profile.submission_calendar == {}

    def test_malformed_calendar_text_is_empty(self):
        user = _matched_user(
            userCalendar={"streak": 1, "submissionCalendar": "{oops"}
        )
        assert parse_profile("alice", user).submission_calendar == {}

    def test_negative_counts_are_clamped(self):
        user = _matched_user(
            submitStatsGlobal={
                "acSubmissionNum": [{"difficulty": "Easy", "count": -3}]
            }
        )
        assert parse_profile("alice", user).easy_solved == 0

    def test_keeps_requested_username_over_upstream_spelling(self):
        profile = parse_profile("alice", _matched_user(username="Alice"))

        assert profile.username == "alice"


class TestParseRetryAfter:
    def test_seconds(self):
        assert _parse_retry_after("12") == 12.0

    def test_missing_or_invalid(self):
        assert _parse_retry_after(None) is None
        assert _parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


class TestFetchProfile:
    async def test_posts_graphql_query(self):
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {"matchedUser": _matched_user()}})

        with _serve(handler):
            profile = await fetch_profile("alice")

        assert profile is not None
        assert profile.total_solved == 60
        assert seen[0]["query"] == PROFILE_QUERY
        assert seen[0]["variables"] == {"username": "alice"}

    async def test_unknown_user_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "errors": [{"message": "That user does not exist."}],
                    "data": {"matchedUser": None},
                },
            )

        with _serve(handler):
            assert await fetch_profile("ghost") is None

    async def test_errors_without_data_raise(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "bad query"}]})

        with _serve(handler), pytest.raises(LeetCodeAPIError):
            await fetch_profile("alice")

    async def test_retries_server_errors_then_succeeds(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"data": {"matchedUser": _matched_user()}})

        with _serve(handler):
            profile = await fetch_profile("alice")

        assert profile is not None
        assert calls == 3

    async def test_gives_up_after_max_attempts(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(429, headers={"Retry-After": "1"})

        with _serve(handler), pytest.raises(LeetCodeServerError) as exc_info:
            await fetch_profile("alice")

        assert calls == 4
        assert exc_info.value.retry_after == 1.0

    async def test_client_error_is_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400)

        with _serve(handler), pytest.raises(LeetCodeAPIError):
            await fetch_profile("alice")

        assert calls == 1

    async def test_timeouts_are_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"data": {"matchedUser": _matched_user()}})

        with _serve(handler):
            assert await fetch_profile("alice") is not None
        assert calls == 2

    async def test_invalid_json_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        with _serve(handler), pytest.raises(LeetCodeAPIError, match="invalid JSON"):
            await fetch_profile("alice")

    @pytest.mark.parametrize(
        "matched_user",
        [
            _matched_user(profile={"ranking": "n/a"}),
            _matched_user(userCalendar={"streak": [1]}),
            _matched_user(submitStatsGlobal="oops"),
            "alice",
        ],
    )
    async def test_malformed_profile_raises_api_error(self, matched_user):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"matchedUser": matched_user}})

        with _serve(handler), pytest.raises(LeetCodeAPIError, match="Malformed"):
            await fetch_profile("alice")

    async def test_non_object_data_raises_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": ["alice"]})

        with _serve(handler), pytest.raises(LeetCodeAPIError):
            await fetch_profile("alice")


@pytest.mark.usefixtures("_reset_leetcode_client")
class TestSharedClient:
    async def test_returns_same_instance(self):
        mock_settings = MagicMock()
        mock_settings.http_timeout = 8.0
        mock_settings.leetcode_user_agent = "test-agent"
        with patch(
            "services.leetcode_client.get_settings",
            autospec=True,
            return_value=mock_settings,
        ):
            c1 = await leetcode_client._get_leetcode_client()
            c2 = await leetcode_client._get_leetcode_client()
        assert c1 is c2
        assert c1.headers["User-Agent"] == "test-agent"

    async def test_close_clears_client(self):
        mock_settings = MagicMock()
        mock_settings.http_timeout = 8.0
        mock_settings.leetcode_user_agent = "test-agent"
        with patch(
            "services.leetcode_client.get_settings",
            autospec=True,
            return_value=mock_settings,
        ):
            client = await leetcode_client._get_leetcode_client()
        await close_leetcode_client()
        assert client.is_closed
        assert leetcode_client._leetcode_http_client is None

    async def test_close_is_noop_when_unset(self):
        await close_leetcode_client()
