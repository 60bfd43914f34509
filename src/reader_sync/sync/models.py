"""Domain models for the sync pipeline, deletion tracking, and retention."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle states for sync runs."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


class ConflictResolution(str, Enum):
    """Which side won when local and upstream read/star state disagree."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True, slots=True)
class FullSync:
    """Fetch without a ``since`` filter."""

    reason: str

    @property
    def name(self) -> str:
        return "full"


@dataclass(frozen=True, slots=True)
class IncrementalSync:
    """Fetch only items newer than the stored watermark."""

    since: int

    @property
    def name(self) -> str:
        return "incremental"


SyncMode = FullSync | IncrementalSync


@dataclass(slots=True)
class IncomingArticle:
    """Article as reported by the upstream provider."""

    provider_id: str
    feed_id: str | None
    title: str
    content: str
    url: str
    published_at: datetime | None
    is_read: bool
    is_starred: bool = False
    author: str | None = None


@dataclass(slots=True)
class StoredArticleState:
    """Read/star state of an existing article row, used for conflict resolution."""

    provider_id: str
    is_read: bool
    is_starred: bool
    last_sync_update: datetime | None
    last_local_update: datetime | None
    created_at: datetime


@dataclass(slots=True)
class ArticleView:
    """Compact article view for inspection commands and tests."""

    article_id: str
    provider_id: str
    feed_id: str | None
    title: str
    url: str
    published_at: datetime | None
    is_read: bool
    is_starred: bool
    last_sync_update: datetime | None


@dataclass(slots=True)
class DeletionRecord:
    """Dedup memory entry for an article purged while read."""

    provider_id: str
    was_read: bool
    feed_id: str | None
    deleted_at: datetime | None = None


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of checking incoming articles against the deletion tracker."""

    to_persist: list[IncomingArticle] = field(default_factory=list)
    to_untrack: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ConflictRecord:
    """Read/star disagreement between a local edit and upstream state."""

    provider_id: str
    resolution: ConflictResolution
    local_is_read: bool
    local_is_starred: bool
    remote_is_read: bool
    remote_is_starred: bool


@dataclass(slots=True)
class PersistOutcome:
    """Result of writing reconciled articles to the article store."""

    persisted_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)


@dataclass(slots=True)
class RetentionCandidate:
    """Article row selected for deletion by retention or read cleanup."""

    article_id: str
    provider_id: str
    feed_id: str | None


@dataclass(slots=True)
class RetentionResult:
    """Result of one retention limit enforcement pass."""

    deleted_count: int = 0
    chunks_processed: int = 0
    tracked_count: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CleanupResult:
    """Result of the read-article cleanup path."""

    read_articles_deleted: int = 0
    tracking_entries_created: int = 0
    chunks_processed: int = 0
    tracker_records_purged: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SyncRunCounters:
    """Counters tracked for sync run statistics."""

    fetched_count: int = 0
    persisted_count: int = 0
    skipped_count: int = 0
    resurrected_count: int = 0
    failed_count: int = 0
    conflicts_count: int = 0
    retention_deleted_count: int = 0


@dataclass(slots=True)
class SyncResult:
    """Result of one sync pipeline run."""

    run_id: str
    mode: SyncMode
    status: RunStatus
    fetched: int = 0
    persisted: int = 0
    skipped: int = 0
    resurrected: int = 0
    failed: int = 0
    conflicts: int = 0
    watermark: int | None = None
    error: str | None = None
    persist_errors: list[str] = field(default_factory=list)
    retention: RetentionResult | None = None
    cleanup: CleanupResult | None = None


@dataclass(slots=True)
class SyncRunView:
    """Compact run view for CLI reporting."""

    run_id: str
    mode: str
    status: str
    started_at: datetime
    finished_at: datetime | None
    fetched_count: int
    persisted_count: int
    skipped_count: int
    resurrected_count: int
    failed_count: int
    conflicts_count: int
    retention_deleted_count: int
    error_summary: str | None
