"""Settings validation, CORS origin assembly and the cached accessor."""

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings

DB_URL = "postgresql+asyncpg://localhost/test"

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestValidation:
    def test_missing_database_url_is_rejected(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(database_url="")

    @pytest.mark.parametrize(
        ("field", "env_name"),
        [
            ("refresh_concurrency", "REFRESH_CONCURRENCY"),
            ("leetcode_max_attempts", "LEETCODE_MAX_ATTEMPTS"),
        ],
    )
    def test_non_positive_counts_are_rejected(self, field, env_name):
        with pytest.raises(ValidationError, match=env_name):
            Settings(database_url=DB_URL, **{field: 0})

    def test_tracker_defaults(self):
        settings = Settings(database_url=DB_URL)

        assert settings.inactive_threshold_days == 3
        assert settings.leetcode_max_attempts == 4
        assert settings.http_timeout == 8.0
        assert settings.refresh_interval_seconds == 21600
        assert settings.leetcode_graphql_url == "https://leetcode.com/graphql"

    def test_environment_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", DB_URL)
        monkeypatch.setenv("REFRESH_CONCURRENCY", "8")
        monkeypatch.setenv("INACTIVE_THRESHOLD_DAYS", "5")

        settings = Settings()

        assert (settings.refresh_concurrency, settings.inactive_threshold_days) == (
            8,
            5,
        )


class TestAllowedOrigins:
    def test_local_frontend_only_in_debug(self):
        assert "http://localhost:3000" in Settings(
            database_url=DB_URL, debug=True, frontend_url=""
        ).allowed_origins
        assert "http://localhost:3000" not in Settings(
            database_url=DB_URL, debug=False, frontend_url=""
        ).allowed_origins

    def test_combines_frontend_and_extra_origins_in_order(self):
        settings = Settings(
            database_url=DB_URL,
            frontend_url="https://cohort.example.com",
            cors_allowed_origins=" https://a.com,,https://b.com ",
        )

        assert settings.allowed_origins == [
            "https://cohort.example.com",
            "https://a.com",
            "https://b.com",
        ]

    def test_duplicates_collapse(self):
        settings = Settings(
            database_url=DB_URL,
            debug=True,
            cors_allowed_origins="http://localhost:3000,https://a.com,https://a.com",
        )

        assert settings.allowed_origins == ["http://localhost:3000", "https://a.com"]


class TestGetSettings:
    def test_cached_until_cleared(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", DB_URL)

        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first
