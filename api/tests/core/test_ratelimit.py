"""Limiter construction and the 429 handler."""

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from core.config import Settings
from core.ratelimit import (
    _get_request_identifier,
    create_limiter,
    rate_limit_exceeded_handler,
)

DB_URL = "postgresql+asyncpg://localhost/test"

pytestmark = pytest.mark.unit


def _exceeded(limit: str = "5 per 1 minute", retry_after: int = 30) -> RateLimitExceeded:
    hit = MagicMock(error_message=None, limit=limit)
    exc = RateLimitExceeded(hit)
    exc.retry_after = retry_after
    return exc


class TestRequestIdentifier:
    def test_keys_on_client_address(self):
        request = MagicMock(spec=Request)
        with patch(
            "core.ratelimit.get_remote_address", return_value="10.0.0.7"
        ) as remote:
            assert _get_request_identifier(request) == "10.0.0.7"
        remote.assert_called_once_with(request)


class TestCreateLimiter:
    def test_each_app_gets_its_own_limiter(self):
        settings = Settings(database_url=DB_URL, debug=True)

        first, second = create_limiter(settings), create_limiter(settings)

        assert isinstance(first, Limiter)
        assert first is not second

    def test_memory_storage_warns_outside_debug(self):
        with patch("core.ratelimit.logger") as log:
            create_limiter(Settings(database_url=DB_URL, debug=False))

        log.warning.assert_called_once()
        assert log.warning.call_args.args[0] == "ratelimit.memory_storage"

    def test_memory_storage_quiet_in_debug(self):
        with patch("core.ratelimit.logger") as log:
            create_limiter(Settings(database_url=DB_URL, debug=True))

        log.warning.assert_not_called()


class TestRateLimitExceededHandler:
    def test_429_carries_retry_after_and_limit(self):
        with patch("core.ratelimit.get_remote_address", return_value="10.0.0.7"):
            response = rate_limit_exceeded_handler(
                MagicMock(spec=Request), _exceeded("10 per 1 hour", retry_after=45)
            )

        body = json.loads(response.body)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "45"
        assert body["retry_after"] == 45
        assert body["limit"] == "10 per 1 hour"
        assert "Rate limit exceeded" in body["detail"]
