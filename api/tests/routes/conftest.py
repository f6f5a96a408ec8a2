"""Route test configuration.

Each test gets a fresh app from create_app() without running its lifespan:
the engine is a mock, the DB dependency yields a mock session and the
rate limiter is disabled.
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from core.config import Settings
from core.database import get_db_readonly
from main import create_app


@pytest.fixture
def mock_db() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def test_app(mock_db):
    settings = Settings(
        database_url="postgresql+asyncpg://localhost/test",
        debug=True,
        enable_background_refresh=False,
    )
    app = create_app(settings)
    app.state.limiter.enabled = False
    app.state.engine = MagicMock()

    async def _override_db() -> AsyncGenerator[AsyncMock]:
        yield mock_db

    app.dependency_overrides[get_db_readonly] = _override_db
    return app


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app), base_url="http://test"
    ) as ac:
        yield ac
