"""Controllers for sync CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

from reader_sync.config import Settings
from reader_sync.storage.common import utc_now
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.models import FullSync, IncrementalSync, SyncMode
from reader_sync.sync.pipeline import run_sync
from reader_sync.sync.services.retention_service import RetentionEnforcer
from reader_sync.sync.services.tracker_service import DeletionTracker
from reader_sync.sync.sources.inoreader import InoreaderStreamClient
from reader_sync.sync.watermark import LAST_SYNC_TIME_KEY, WATERMARK_KEY, resolve_sync_mode
from reader_sync.usage.counter import UsageCounter


@dataclass(slots=True)
class SyncRunCommand:
    """CLI inputs for one sync pass."""

    db_path: Path | None


@dataclass(slots=True)
class SyncStatusCommand:
    """CLI inputs for sync status command."""

    db_path: Path | None
    recent_runs: int


@dataclass(slots=True)
class RetentionEnforceCommand:
    """CLI inputs for retention limit enforcement."""

    db_path: Path | None
    limit: int | None


@dataclass(slots=True)
class RetentionCleanupCommand:
    """CLI inputs for read-article cleanup."""

    db_path: Path | None
    batch_size: int | None


@dataclass(slots=True)
class TrackerPurgeCommand:
    """CLI inputs for deletion tracker purge."""

    db_path: Path | None
    days: int | None


@dataclass(slots=True)
class UsageShowCommand:
    """CLI inputs for usage ledger inspection."""

    db_path: Path | None
    service: str | None
    usage_date: date | None


class SyncCliController:
    """Coordinates sync, retention, tracker, and usage command execution."""

    def run_sync(self, command: SyncRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_sync()
        with _repository(settings) as repository:
            provider = InoreaderStreamClient(
                settings=settings.provider,
                usage_counter=UsageCounter(repository.engine),
            )
            with provider:
                result = run_sync(settings=settings, repository=repository, provider=provider)

        lines = [
            "Sync run completed: "
            f"run_id={result.run_id} status={result.status.value} "
            f"mode={_describe_mode(result.mode)} "
            f"fetched={result.fetched} persisted={result.persisted} "
            f"skipped={result.skipped} resurrected={result.resurrected} "
            f"failed={result.failed} conflicts={result.conflicts}",
        ]
        if result.error:
            lines.append(f"Sync error: {result.error}")
        for error in result.persist_errors:
            lines.append(f"  persist_error={error}")
        if result.watermark is not None:
            lines.append(f"Watermark advanced to {result.watermark}")
        if result.cleanup is not None:
            lines.append(
                "Read cleanup: "
                f"deleted={result.cleanup.read_articles_deleted} "
                f"tracked={result.cleanup.tracking_entries_created} "
                f"purged={result.cleanup.tracker_records_purged}",
            )
        if result.retention is not None:
            lines.append(
                "Retention: "
                f"limit={settings.retention.article_limit} "
                f"deleted={result.retention.deleted_count} "
                f"chunks={result.retention.chunks_processed} "
                f"errors={len(result.retention.errors)}",
            )
        return lines

    def status(self, command: SyncStatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with _repository(settings) as repository:
            raw_watermark = repository.get_sync_metadata(WATERMARK_KEY)
            last_sync_time = repository.get_sync_metadata(LAST_SYNC_TIME_KEY)
            next_mode = resolve_sync_mode(
                raw_watermark,
                now=utc_now(),
                full_sync_after=timedelta(days=settings.sync.full_sync_after_days),
            )
            article_count = repository.count_articles()
            read_unstarred = repository.count_read_unstarred()
            tracked = repository.count_deletion_records()
            runs = repository.list_recent_runs(limit=command.recent_runs)

        lines = [
            f"Account: {settings.user_context.user_id}",
            f"Last sync: {last_sync_time or '-'}",
            f"Watermark: {raw_watermark or '-'}",
            f"Next sync mode: {_describe_mode(next_mode)}",
            f"Articles: total={article_count} read_unstarred={read_unstarred} "
            f"limit={settings.retention.article_limit}",
            f"Deletion records: {tracked}",
            "Recent runs:",
        ]
        if not runs:
            lines.append("  none")
        for run in runs:
            lines.append(
                "  "
                f"{run.run_id} mode={run.mode} status={run.status} "
                f"started={run.started_at.isoformat()} "
                f"fetched={run.fetched_count} persisted={run.persisted_count} "
                f"skipped={run.skipped_count} resurrected={run.resurrected_count} "
                f"failed={run.failed_count} retention_deleted={run.retention_deleted_count}"
                + (f" error={run.error_summary}" if run.error_summary else ""),
            )
        return lines

    def enforce_retention(self, command: RetentionEnforceCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        limit = settings.retention.article_limit if command.limit is None else command.limit
        with _repository(settings) as repository:
            result = _retention(repository, settings).enforce_retention_limit(
                repository.user_id,
                limit,
            )

        lines = [
            "Retention completed: "
            f"limit={limit} deleted={result.deleted_count} "
            f"tracked={result.tracked_count} chunks={result.chunks_processed}",
        ]
        lines.extend(f"  error={error}" for error in result.errors)
        return lines

    def cleanup_read(self, command: RetentionCleanupCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        with _repository(settings) as repository:
            result = _retention(repository, settings).cleanup_read_articles(
                repository.user_id,
                command.batch_size,
            )

        lines = [
            "Read cleanup completed: "
            f"deleted={result.read_articles_deleted} "
            f"tracked={result.tracking_entries_created} "
            f"chunks={result.chunks_processed} "
            f"tracker_purged={result.tracker_records_purged}",
        ]
        lines.extend(f"  error={error}" for error in result.errors)
        return lines

    def purge_tracker(self, command: TrackerPurgeCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        days = settings.retention.tracker_retention_days if command.days is None else command.days
        with _repository(settings) as repository:
            purged = DeletionTracker(repository=repository).purge_old_records(days)
            remaining = repository.count_deletion_records()

        return [f"Deletion tracker purge: days={days} purged={purged} remaining={remaining}"]

    def usage(self, command: UsageShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        service = command.service or settings.provider.service_name
        usage_date = command.usage_date or utc_now().date()
        with _repository(settings) as repository:
            counter = UsageCounter(repository.engine)
            snapshot = counter.get_usage(service, usage_date)
            status = counter.check_rate_limit(
                service,
                usage_date,
                settings.provider.daily_call_limit,
            )

        lines = [
            f"Usage for {service} on {usage_date.isoformat()}: "
            f"calls={status.count}/{status.daily_limit} "
            f"remaining={status.remaining} level={status.level}",
        ]
        if snapshot is None:
            lines.append("Zones: no data")
            return lines
        zones = snapshot.zones
        lines.extend(
            [
                f"Zone 1: {_fmt(zones.zone1_usage)}/{_fmt(zones.zone1_limit)}",
                f"Zone 2: {_fmt(zones.zone2_usage)}/{_fmt(zones.zone2_limit)}",
                f"Reset after: {_fmt(zones.reset_after)}s",
                f"Updated: {snapshot.updated_at.isoformat()}",
            ],
        )
        return lines


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository(
        settings.db_path,
        user_id=settings.user_context.user_id,
        user_name=settings.user_context.user_name,
    )
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


def _retention(repository: SQLiteRepository, settings: Settings) -> RetentionEnforcer:
    return RetentionEnforcer(
        repository=repository,
        tracker=DeletionTracker(repository=repository),
        retention_settings=settings.retention,
    )


def _describe_mode(mode: SyncMode) -> str:
    if isinstance(mode, IncrementalSync):
        return f"incremental(since={mode.since})"
    if isinstance(mode, FullSync):
        return f"full({mode.reason})"
    return mode.name


def _fmt(value: int | None) -> str:
    return "-" if value is None else str(value)
