"""Deletion tracking that keeps purged read articles from coming back."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from reader_sync.storage.common import utc_now
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.errors import TrackingError
from reader_sync.sync.models import DeletionRecord, IncomingArticle, ReconcileResult

logger = logging.getLogger(__name__)

DEFAULT_TRACKER_RETENTION_DAYS = 90


class DeletionTracker:
    """Records purged articles and decides which incoming ones may be re-imported."""

    def __init__(self, *, repository: SQLiteRepository) -> None:
        self.repository = repository

    def track(self, provider_id: str, *, was_read: bool, feed_id: str | None) -> int:
        return self.track_many(
            [DeletionRecord(provider_id=provider_id, was_read=was_read, feed_id=feed_id)],
        )

    def track_many(self, records: Sequence[DeletionRecord]) -> int:
        """Insert-or-ignore records; the first ``deleted_at`` for an id is kept."""

        if not records:
            return 0
        try:
            return self.repository.insert_deletion_records(records, deleted_at=utc_now())
        except SQLAlchemyError as error:
            raise TrackingError(
                message=f"Failed to track {len(records)} deleted articles: {error}",
                provider_ids=tuple(record.provider_id for record in records),
            ) from error

    def untrack(self, provider_ids: Sequence[str]) -> int:
        if not provider_ids:
            return 0
        return self.repository.delete_deletion_records(provider_ids)

    def tracked_ids(self, provider_ids: Sequence[str]) -> dict[str, DeletionRecord]:
        return self.repository.get_deletion_records(provider_ids)

    def purge_old_records(self, retention_days: int = DEFAULT_TRACKER_RETENTION_DAYS) -> int:
        cutoff = utc_now() - timedelta(days=retention_days)
        purged = self.repository.purge_deletion_records(cutoff=cutoff)
        if purged:
            logger.info("Purged %d deletion records older than %d days", purged, retention_days)
        return purged

    def reconcile(self, incoming: Sequence[IncomingArticle]) -> ReconcileResult:
        """Split incoming articles into persist, resurrect-then-untrack, and skip sets.

        Untracking is left to the caller so that it happens only after the
        resurrected rows were actually written.
        """

        result = ReconcileResult()
        tracked = self.tracked_ids([article.provider_id for article in incoming])

        for article in incoming:
            record = tracked.get(article.provider_id)
            if record is None:
                result.to_persist.append(article)
            elif record.was_read and article.is_read:
                result.skipped.append(article.provider_id)
            else:
                result.to_persist.append(article)
                result.to_untrack.append(article.provider_id)

        if result.skipped or result.to_untrack:
            logger.info(
                "Reconciled %d incoming articles: %d skipped as deleted, %d resurrected",
                len(incoming),
                len(result.skipped),
                len(result.to_untrack),
            )
        return result
