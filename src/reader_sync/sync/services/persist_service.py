"""Persist stage: conflict-aware chunked upserts into the article store."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from reader_sync.config import SyncSettings
from reader_sync.storage.common import chunked
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.conflicts import resolve_article_state
from reader_sync.sync.errors import PersistError
from reader_sync.sync.models import IncomingArticle, PersistOutcome

logger = logging.getLogger(__name__)


class PersistStageService:
    """Writes reconciled articles; one bad row never sinks the rest of the batch."""

    def __init__(self, *, repository: SQLiteRepository, sync_settings: SyncSettings) -> None:
        self.repository = repository
        self.sync_settings = sync_settings

    def run(self, articles: Sequence[IncomingArticle], *, synced_at: datetime) -> PersistOutcome:
        outcome = PersistOutcome()
        if not articles:
            return outcome

        # Last occurrence of a repeated provider id wins.
        articles = list({article.provider_id: article for article in articles}.values())
        stored = self.repository.find_article_states([article.provider_id for article in articles])
        resolved: list[IncomingArticle] = []
        for article in articles:
            to_write, conflict = resolve_article_state(article, stored.get(article.provider_id))
            if conflict is not None:
                outcome.conflicts.append(conflict)
                logger.info(
                    "Read/star conflict on %s resolved in favor of %s",
                    conflict.provider_id,
                    conflict.resolution.value,
                )
            resolved.append(to_write)

        for chunk in chunked(resolved, self.sync_settings.upsert_chunk_size):
            try:
                self.repository.upsert_articles(chunk, synced_at=synced_at)
            except SQLAlchemyError as error:
                logger.warning(
                    "Chunk upsert of %d articles failed, retrying one by one: %s",
                    len(chunk),
                    error,
                )
                self._persist_one_by_one(chunk, synced_at=synced_at, outcome=outcome)
                continue
            outcome.persisted_ids.extend(article.provider_id for article in chunk)

        return outcome

    def _persist_one_by_one(
        self,
        chunk: Sequence[IncomingArticle],
        *,
        synced_at: datetime,
        outcome: PersistOutcome,
    ) -> None:
        for article in chunk:
            try:
                self._persist_single(article, synced_at=synced_at)
            except PersistError as error:
                logger.warning("Skipping article %s: %s", error.provider_id, error)
                outcome.errors.append(f"{error.provider_id}: {error}")
                continue
            outcome.persisted_ids.append(article.provider_id)

    def _persist_single(self, article: IncomingArticle, *, synced_at: datetime) -> None:
        try:
            self.repository.upsert_articles([article], synced_at=synced_at)
        except SQLAlchemyError as error:
            raise PersistError(
                message=f"Failed to persist article: {error}",
                provider_id=article.provider_id,
            ) from error
