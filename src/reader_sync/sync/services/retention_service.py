"""Retention cap and read-article cleanup over the article store."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from reader_sync.config import RetentionSettings
from reader_sync.storage.common import chunked
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.errors import TrackingError
from reader_sync.sync.models import (
    CleanupResult,
    DeletionRecord,
    RetentionCandidate,
    RetentionResult,
)
from reader_sync.sync.services.tracker_service import DeletionTracker

logger = logging.getLogger(__name__)


class RetentionEnforcer:
    """Deletes the oldest read, unstarred articles while recording them in the tracker."""

    def __init__(
        self,
        *,
        repository: SQLiteRepository,
        tracker: DeletionTracker,
        retention_settings: RetentionSettings,
    ) -> None:
        self.repository = repository
        self.tracker = tracker
        self.retention_settings = retention_settings

    def track_then_delete(
        self,
        chunk: Sequence[RetentionCandidate],
        *,
        account_id: str,
    ) -> tuple[int, int]:
        """Track every row of the chunk, then delete it.

        Returns ``(tracked, deleted)``. ``TrackingError`` propagates before any
        row is deleted.
        """

        tracked = self.tracker.track_many(
            [
                DeletionRecord(
                    provider_id=candidate.provider_id,
                    was_read=True,
                    feed_id=candidate.feed_id,
                )
                for candidate in chunk
            ],
        )
        deleted = self.repository.delete_read_unstarred(
            [candidate.article_id for candidate in chunk],
            user_id=account_id,
        )
        if deleted < len(chunk):
            # Rows starred or unread meanwhile survive the delete and must not stay tracked.
            survivors = self.repository.find_article_states(
                [candidate.provider_id for candidate in chunk],
                user_id=account_id,
            )
            if survivors:
                self.tracker.untrack(list(survivors))
                tracked = max(0, tracked - len(survivors))
        return tracked, deleted

    def enforce_retention_limit(self, account_id: str, limit: int) -> RetentionResult:
        result = RetentionResult()
        total = self.repository.count_articles(user_id=account_id)
        if total <= limit:
            return result

        excess = total - limit
        candidates = self.repository.list_read_unstarred(limit=excess, user_id=account_id)
        if len(candidates) < excess:
            logger.info(
                "Retention for %s: %d articles over limit but only %d read and unstarred",
                account_id,
                excess,
                len(candidates),
            )

        self._process_chunks(candidates, account_id=account_id, result=result)
        logger.info(
            "Retention for %s: deleted %d of %d excess articles in %d chunks",
            account_id,
            result.deleted_count,
            excess,
            result.chunks_processed,
        )
        return result

    def cleanup_read_articles(
        self,
        account_id: str,
        batch_size: int | None = None,
    ) -> CleanupResult:
        """Delete up to ``batch_size`` read, unstarred articles and purge old tracker rows."""

        size = (
            batch_size if batch_size is not None else self.retention_settings.cleanup_batch_size
        )
        candidates = self.repository.list_read_unstarred(limit=size, user_id=account_id)

        chunk_result = RetentionResult()
        self._process_chunks(candidates, account_id=account_id, result=chunk_result)

        result = CleanupResult(
            read_articles_deleted=chunk_result.deleted_count,
            tracking_entries_created=chunk_result.tracked_count,
            chunks_processed=chunk_result.chunks_processed,
            errors=list(chunk_result.errors),
        )
        result.tracker_records_purged = self.tracker.purge_old_records(
            self.retention_settings.tracker_retention_days,
        )
        logger.info(
            "Read cleanup for %s: deleted %d articles, tracked %d, purged %d old records",
            account_id,
            result.read_articles_deleted,
            result.tracking_entries_created,
            result.tracker_records_purged,
        )
        return result

    def _process_chunks(
        self,
        candidates: Sequence[RetentionCandidate],
        *,
        account_id: str,
        result: RetentionResult,
    ) -> None:
        for chunk in chunked(candidates, self.retention_settings.chunk_size):
            try:
                tracked, deleted = self.track_then_delete(chunk, account_id=account_id)
            except TrackingError as error:
                logger.warning(
                    "Stopping deletion pass for %s after %d chunks: %s",
                    account_id,
                    result.chunks_processed,
                    error,
                )
                result.errors.append(str(error))
                return
            result.tracked_count += tracked
            result.deleted_count += deleted
            result.chunks_processed += 1
