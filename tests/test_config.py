from __future__ import annotations

from pathlib import Path

import allure
import pytest

from reader_sync.config import ProviderSettings, RetentionSettings, Settings, SyncSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_defaults_match_documented_limits() -> None:
    settings = Settings()

    assert settings.sync.max_articles == 100
    assert settings.sync.full_sync_after_days == 7
    assert settings.retention.article_limit == 1000
    assert settings.retention.chunk_size == 200
    assert settings.retention.tracker_retention_days == 90
    assert settings.retention.cleanup_read_enabled is False
    settings.validate()


def test_from_env_reads_prefixed_and_legacy_variables(monkeypatch) -> None:
    monkeypatch.setenv("READER_SYNC_DB_PATH", "/tmp/custom.db")
    monkeypatch.setenv("SYNC_MAX_ARTICLES", "250")
    monkeypatch.setenv("ARTICLES_RETENTION_LIMIT", "500")
    monkeypatch.setenv("READER_SYNC_CLEANUP_READ_ENABLED", "yes")
    monkeypatch.setenv("READER_SYNC_PROVIDER_ACCESS_TOKEN", "  token-1  ")
    monkeypatch.setenv("READER_SYNC_USER_ID", "alice")

    settings = Settings.from_env()

    assert settings.db_path == Path("/tmp/custom.db")
    assert settings.sync.max_articles == 250
    assert settings.retention.article_limit == 500
    assert settings.retention.cleanup_read_enabled is True
    assert settings.provider.access_token == "token-1"
    assert settings.user_context.user_id == "alice"


def test_prefixed_variable_wins_over_legacy_name(monkeypatch) -> None:
    monkeypatch.setenv("SYNC_MAX_ARTICLES", "250")
    monkeypatch.setenv("READER_SYNC_MAX_ARTICLES", "40")

    assert Settings.from_env().sync.max_articles == 40


def test_from_env_db_path_argument_overrides_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("READER_SYNC_DB_PATH", "/tmp/ignored.db")

    settings = Settings.from_env(db_path=tmp_path / "explicit.db")

    assert settings.db_path == tmp_path / "explicit.db"


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("READER_SYNC_CLEANUP_READ_ENABLED", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(sync=SyncSettings(max_articles=0)), "READER_SYNC_MAX_ARTICLES"),
        (Settings(retention=RetentionSettings(chunk_size=0)), "READER_SYNC_DELETE_CHUNK_SIZE"),
        (
            Settings(retention=RetentionSettings(article_limit=-1)),
            "READER_SYNC_ARTICLES_RETENTION_LIMIT",
        ),
        (
            Settings(provider=ProviderSettings(daily_call_limit=0)),
            "READER_SYNC_PROVIDER_DAILY_CALL_LIMIT",
        ),
    ],
)
def test_validate_rejects_out_of_range_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_validate_for_sync_requires_access_token() -> None:
    with pytest.raises(ValueError, match="access token is required"):
        Settings().validate_for_sync()


def test_validate_for_sync_rejects_invalid_base_url() -> None:
    settings = Settings(
        provider=ProviderSettings(base_url="ftp://example.com", access_token="token"),
    )

    with pytest.raises(ValueError, match="Invalid provider base URL"):
        settings.validate_for_sync()


def test_validate_for_sync_accepts_configured_provider() -> None:
    Settings(provider=ProviderSettings(access_token="token")).validate_for_sync()
