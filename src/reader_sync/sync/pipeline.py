"""End-to-end sync pipeline orchestration."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from reader_sync.config import Settings
from reader_sync.storage.common import utc_now
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.models import (
    IncrementalSync,
    RunStatus,
    SyncMode,
    SyncResult,
    SyncRunCounters,
)
from reader_sync.sync.services.persist_service import PersistStageService
from reader_sync.sync.services.retention_service import RetentionEnforcer
from reader_sync.sync.services.tracker_service import DeletionTracker
from reader_sync.sync.sources.base import FetchError, StreamProvider, StreamRequest
from reader_sync.sync.watermark import LAST_SYNC_TIME_KEY, WATERMARK_KEY, resolve_sync_mode

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Runs FETCH, RECONCILE, PERSIST, watermark advance, then maintenance."""

    def __init__(
        self,
        *,
        settings: Settings,
        repository: SQLiteRepository,
        provider: StreamProvider,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.provider = provider
        self._now = now

        self.tracker = DeletionTracker(repository=repository)
        self.persist_stage = PersistStageService(
            repository=repository,
            sync_settings=settings.sync,
        )
        self.retention = RetentionEnforcer(
            repository=repository,
            tracker=self.tracker,
            retention_settings=settings.retention,
        )

    def run(self) -> SyncResult:
        started_at = self._now()
        mode = resolve_sync_mode(
            self.repository.get_sync_metadata(WATERMARK_KEY),
            now=started_at,
            full_sync_after=timedelta(days=self.settings.sync.full_sync_after_days),
        )
        run_id = self.repository.start_run(mode=mode.name)
        counters = SyncRunCounters()
        result = SyncResult(run_id=run_id, mode=mode, status=RunStatus.RUNNING)
        logger.info("Sync run %s started in %s mode", run_id, mode.name)

        try:
            incoming = self.provider.fetch_stream(self._build_request(mode))
            counters.fetched_count = result.fetched = len(incoming)

            reconciled = self.tracker.reconcile(incoming)
            outcome = self.persist_stage.run(reconciled.to_persist, synced_at=started_at)

            persisted = set(outcome.persisted_ids)
            resurrected = [pid for pid in dict.fromkeys(reconciled.to_untrack) if pid in persisted]
            self.tracker.untrack(resurrected)

            result.persisted = counters.persisted_count = len(outcome.persisted_ids)
            result.skipped = counters.skipped_count = len(reconciled.skipped)
            result.resurrected = counters.resurrected_count = len(resurrected)
            result.failed = counters.failed_count = len(outcome.errors)
            result.conflicts = counters.conflicts_count = len(outcome.conflicts)
            result.persist_errors = list(outcome.errors)

            result.watermark = int(started_at.timestamp())
            self.repository.set_sync_metadata(WATERMARK_KEY, str(result.watermark))
            self.repository.set_sync_metadata(LAST_SYNC_TIME_KEY, started_at.isoformat())

            self._run_maintenance(result=result, counters=counters)

            result.status = RunStatus.PARTIAL if outcome.errors else RunStatus.SUCCEEDED
            self.repository.finish_run(
                run_id,
                result.status,
                counters,
                error_summary="; ".join(outcome.errors[:5]) or None,
            )
        except FetchError as error:
            logger.error("Sync run %s aborted, upstream fetch failed: %s", run_id, error)
            result.status = RunStatus.FAILED
            result.error = str(error)
            self.repository.finish_run(run_id, RunStatus.FAILED, counters, error_summary=str(error))
            return result
        except Exception as exc:
            self.repository.finish_run(run_id, RunStatus.FAILED, counters, error_summary=str(exc))
            raise

        logger.info(
            "Sync run %s finished %s: fetched=%d persisted=%d skipped=%d resurrected=%d failed=%d",
            run_id,
            result.status.value,
            result.fetched,
            result.persisted,
            result.skipped,
            result.resurrected,
            result.failed,
        )
        return result

    def _build_request(self, mode: SyncMode) -> StreamRequest:
        return StreamRequest(
            max_items=self.settings.sync.max_articles,
            since=mode.since if isinstance(mode, IncrementalSync) else None,
            exclude_read=True,
        )

    def _run_maintenance(self, *, result: SyncResult, counters: SyncRunCounters) -> None:
        account_id = self.repository.user_id
        if self.settings.retention.cleanup_read_enabled:
            try:
                result.cleanup = self.retention.cleanup_read_articles(account_id)
                counters.retention_deleted_count += result.cleanup.read_articles_deleted
            except Exception:
                logger.exception("Read cleanup failed for %s", account_id)

        try:
            result.retention = self.retention.enforce_retention_limit(
                account_id,
                self.settings.retention.article_limit,
            )
            counters.retention_deleted_count += result.retention.deleted_count
        except Exception:
            logger.exception("Retention enforcement failed for %s", account_id)


def run_sync(
    *,
    settings: Settings,
    repository: SQLiteRepository,
    provider: StreamProvider,
) -> SyncResult:
    """Run one sync pass with provided dependencies."""

    return SyncOrchestrator(
        settings=settings,
        repository=repository,
        provider=provider,
    ).run()
