"""Runtime configuration for sync, retention, and provider access."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse


@dataclass(slots=True)
class SyncSettings:
    """Upstream sync settings."""

    max_articles: int = 100
    full_sync_after_days: int = 7
    upsert_chunk_size: int = 50


@dataclass(slots=True)
class RetentionSettings:
    """Article retention and deletion tracking settings."""

    article_limit: int = 1_000
    chunk_size: int = 200
    tracker_retention_days: int = 90
    cleanup_read_enabled: bool = False
    cleanup_batch_size: int = 1_000


@dataclass(slots=True)
class ProviderSettings:
    """Upstream provider access settings."""

    service_name: str = "inoreader"
    base_url: str = "https://www.inoreader.com"
    access_token: str | None = None
    app_id: str | None = None
    app_key: str | None = None
    request_timeout_seconds: float = 30.0
    max_retries: int = 3
    daily_call_limit: int = 100


@dataclass(slots=True)
class UserContextSettings:
    """User context settings."""

    user_id: str = "default_user"
    user_name: str = "Default User"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".reader_sync.db")
    sync: SyncSettings = field(default_factory=SyncSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("READER_SYNC_DB_PATH", ".reader_sync.db")),
            sync=SyncSettings(
                max_articles=int(
                    os.getenv(
                        "READER_SYNC_MAX_ARTICLES",
                        os.getenv("SYNC_MAX_ARTICLES", "100"),
                    ),
                ),
                full_sync_after_days=int(os.getenv("READER_SYNC_FULL_SYNC_AFTER_DAYS", "7")),
                upsert_chunk_size=int(os.getenv("READER_SYNC_UPSERT_CHUNK_SIZE", "50")),
            ),
            retention=RetentionSettings(
                article_limit=int(
                    os.getenv(
                        "READER_SYNC_ARTICLES_RETENTION_LIMIT",
                        os.getenv("ARTICLES_RETENTION_LIMIT", "1000"),
                    ),
                ),
                chunk_size=int(os.getenv("READER_SYNC_DELETE_CHUNK_SIZE", "200")),
                tracker_retention_days=int(
                    os.getenv("READER_SYNC_TRACKER_RETENTION_DAYS", "90"),
                ),
                cleanup_read_enabled=_env_bool(
                    "READER_SYNC_CLEANUP_READ_ENABLED",
                    default=False,
                ),
                cleanup_batch_size=int(os.getenv("READER_SYNC_CLEANUP_BATCH_SIZE", "1000")),
            ),
            provider=ProviderSettings(
                service_name=os.getenv("READER_SYNC_PROVIDER_SERVICE", "inoreader"),
                base_url=os.getenv("READER_SYNC_PROVIDER_BASE_URL", "https://www.inoreader.com"),
                access_token=_env_optional("READER_SYNC_PROVIDER_ACCESS_TOKEN"),
                app_id=_env_optional("READER_SYNC_PROVIDER_APP_ID"),
                app_key=_env_optional("READER_SYNC_PROVIDER_APP_KEY"),
                request_timeout_seconds=float(
                    os.getenv("READER_SYNC_PROVIDER_TIMEOUT_SECONDS", "30.0"),
                ),
                max_retries=int(os.getenv("READER_SYNC_PROVIDER_MAX_RETRIES", "3")),
                daily_call_limit=int(os.getenv("READER_SYNC_PROVIDER_DAILY_CALL_LIMIT", "100")),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("READER_SYNC_USER_ID", "default_user"),
                user_name=os.getenv("READER_SYNC_USER_NAME", "Default User"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if sync or retention settings are out of range."""

        if self.sync.max_articles <= 0:
            raise ValueError("READER_SYNC_MAX_ARTICLES must be a positive integer.")
        if self.sync.full_sync_after_days <= 0:
            raise ValueError("READER_SYNC_FULL_SYNC_AFTER_DAYS must be > 0.")
        if self.sync.upsert_chunk_size <= 0:
            raise ValueError("READER_SYNC_UPSERT_CHUNK_SIZE must be > 0.")
        if self.retention.article_limit < 0:
            raise ValueError("READER_SYNC_ARTICLES_RETENTION_LIMIT must be >= 0.")
        if self.retention.chunk_size <= 0:
            raise ValueError("READER_SYNC_DELETE_CHUNK_SIZE must be > 0.")
        if self.retention.tracker_retention_days <= 0:
            raise ValueError("READER_SYNC_TRACKER_RETENTION_DAYS must be > 0.")
        if self.retention.cleanup_batch_size <= 0:
            raise ValueError("READER_SYNC_CLEANUP_BATCH_SIZE must be > 0.")
        if self.provider.daily_call_limit <= 0:
            raise ValueError("READER_SYNC_PROVIDER_DAILY_CALL_LIMIT must be > 0.")

    def validate_for_sync(self) -> None:
        """Raise configuration error if the upstream provider cannot be reached."""

        self.validate()
        _validate_base_url(self.provider.base_url)
        if not self.provider.access_token:
            raise ValueError(
                "An upstream access token is required. Set READER_SYNC_PROVIDER_ACCESS_TOKEN.",
            )
        if self.provider.request_timeout_seconds <= 0:
            raise ValueError("READER_SYNC_PROVIDER_TIMEOUT_SECONDS must be > 0.")


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid provider base URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
