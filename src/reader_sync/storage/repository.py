"""SQLModel-backed storage facade for the sync pipeline."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, delete, select

from reader_sync.storage.alembic_runner import upgrade_head
from reader_sync.storage.common import (
    MAX_SQL_VARIABLES,
    build_sqlite_engine,
    chunked,
    connect_sqlite_with_policy,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from reader_sync.storage.sqlmodel_models import (
    DEFAULT_USER_ID,
    AppUser,
    Article,
    DeletedArticle,
    SyncMetadata,
    SyncRun,
)
from reader_sync.sync.models import (
    ArticleView,
    DeletionRecord,
    IncomingArticle,
    RetentionCandidate,
    RunStatus,
    StoredArticleState,
    SyncRunCounters,
    SyncRunView,
)

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5_000

_SYNC_UPDATED_COLUMNS = (
    "feed_id",
    "title",
    "author",
    "content",
    "url",
    "published_at",
    "is_read",
    "is_starred",
    "last_sync_update",
)


class SQLiteRepository:
    """Facade that persists sync entities using SQLModel and Alembic."""

    def __init__(
        self,
        db_path: Path,
        *,
        user_id: str = DEFAULT_USER_ID,
        user_name: str = "Default User",
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.user_id = user_id
        self.user_name = user_name

        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

        # Keep low-level connection for tests and ad-hoc debugging queries.
        self._connection = connect_sqlite_with_policy(
            db_path=db_path,
            busy_timeout_ms=busy_timeout_ms,
        )

    def close(self) -> None:
        self._connection.close()
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)
        self._ensure_actor_context()

    # Sync run accounting

    def start_run(self, *, mode: str) -> str:
        run_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                SyncRun(
                    run_id=run_id,
                    user_id=self.user_id,
                    mode=mode,
                    status=RunStatus.RUNNING.value,
                    started_at=utc_now(),
                ),
            )
            session.commit()
        return run_id

    def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        counters: SyncRunCounters,
        error_summary: str | None = None,
    ) -> None:
        with Session(self.engine) as session:
            run = session.exec(
                select(SyncRun).where(
                    SyncRun.run_id == run_id,
                    SyncRun.user_id == self.user_id,
                ),
            ).one_or_none()
            if run is None:
                raise RuntimeError(f"Run not found: {run_id}")

            run.status = status.value
            run.finished_at = utc_now()
            run.fetched_count = counters.fetched_count
            run.persisted_count = counters.persisted_count
            run.skipped_count = counters.skipped_count
            run.resurrected_count = counters.resurrected_count
            run.failed_count = counters.failed_count
            run.conflicts_count = counters.conflicts_count
            run.retention_deleted_count = counters.retention_deleted_count
            run.error_summary = error_summary
            session.add(run)
            session.commit()

    def list_recent_runs(self, *, limit: int = 5) -> list[SyncRunView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(SyncRun)
                .where(SyncRun.user_id == self.user_id)
                .order_by(col(SyncRun.started_at).desc(), col(SyncRun.run_id).desc())
                .limit(max(1, limit)),
            ).all()

        return [
            SyncRunView(
                run_id=row.run_id,
                mode=row.mode,
                status=row.status,
                started_at=to_utc_aware_datetime(row.started_at),
                finished_at=(
                    to_utc_aware_datetime(row.finished_at) if row.finished_at is not None else None
                ),
                fetched_count=row.fetched_count,
                persisted_count=row.persisted_count,
                skipped_count=row.skipped_count,
                resurrected_count=row.resurrected_count,
                failed_count=row.failed_count,
                conflicts_count=row.conflicts_count,
                retention_deleted_count=row.retention_deleted_count,
                error_summary=row.error_summary,
            )
            for row in rows
        ]

    # Sync metadata (watermark)

    def get_sync_metadata(self, key: str) -> str | None:
        with Session(self.engine) as session:
            return session.exec(
                select(SyncMetadata.value).where(
                    SyncMetadata.user_id == self.user_id,
                    SyncMetadata.key == key,
                ),
            ).one_or_none()

    def set_sync_metadata(self, key: str, value: str) -> None:
        statement = sqlite_insert(SyncMetadata).values(
            user_id=self.user_id,
            key=key,
            value=value,
            updated_at=to_db_datetime(utc_now()),
        )
        statement = statement.on_conflict_do_update(
            index_elements=["user_id", "key"],
            set_={
                "value": statement.excluded.value,
                "updated_at": statement.excluded.updated_at,
            },
        )
        with Session(self.engine) as session:
            session.exec(statement)
            session.commit()

    # Article store

    def upsert_articles(self, articles: Sequence[IncomingArticle], *, synced_at: datetime) -> None:
        """Insert or update this account's articles keyed by provider id in one statement.

        Raises the underlying SQLAlchemy error when any row is rejected; callers
        that need per-row isolation retry with single-item batches.
        """

        if not articles:
            return

        synced_db = to_db_datetime(synced_at)
        rows = [
            {
                "article_id": str(uuid4()),
                "user_id": self.user_id,
                "provider_id": article.provider_id,
                "feed_id": article.feed_id,
                "title": article.title,
                "author": article.author,
                "content": article.content,
                "url": article.url,
                "published_at": (
                    to_db_datetime(article.published_at)
                    if article.published_at is not None
                    else None
                ),
                "is_read": article.is_read,
                "is_starred": article.is_starred,
                "last_sync_update": synced_db,
                "created_at": synced_db,
            }
            for article in articles
        ]
        statement = sqlite_insert(Article).values(rows)
        statement = statement.on_conflict_do_update(
            index_elements=["user_id", "provider_id"],
            set_={name: statement.excluded[name] for name in _SYNC_UPDATED_COLUMNS},
        )
        with Session(self.engine) as session:
            session.exec(statement)
            session.commit()

    def find_article_states(
        self,
        provider_ids: Sequence[str],
        *,
        user_id: str | None = None,
    ) -> dict[str, StoredArticleState]:
        scope = user_id or self.user_id
        states: dict[str, StoredArticleState] = {}
        if not provider_ids:
            return states

        with Session(self.engine) as session:
            for batch in chunked(list(dict.fromkeys(provider_ids)), MAX_SQL_VARIABLES):
                rows = session.exec(
                    select(Article).where(
                        Article.user_id == scope,
                        col(Article.provider_id).in_(batch),
                    ),
                ).all()
                for row in rows:
                    states[row.provider_id] = StoredArticleState(
                        provider_id=row.provider_id,
                        is_read=row.is_read,
                        is_starred=row.is_starred,
                        last_sync_update=_optional_aware(row.last_sync_update),
                        last_local_update=_optional_aware(row.last_local_update),
                        created_at=to_utc_aware_datetime(row.created_at),
                    )
        return states

    def mark_article_state(
        self,
        provider_id: str,
        *,
        is_read: bool | None = None,
        is_starred: bool | None = None,
    ) -> bool:
        """Record a local user action on an article; returns False if the row is absent."""

        with Session(self.engine) as session:
            row = session.exec(
                select(Article).where(
                    Article.provider_id == provider_id,
                    Article.user_id == self.user_id,
                ),
            ).one_or_none()
            if row is None:
                return False
            if is_read is not None:
                row.is_read = is_read
            if is_starred is not None:
                row.is_starred = is_starred
            row.last_local_update = to_db_datetime(utc_now())
            session.add(row)
            session.commit()
            return True

    def get_article(self, provider_id: str) -> ArticleView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Article).where(
                    Article.provider_id == provider_id,
                    Article.user_id == self.user_id,
                ),
            ).one_or_none()
            return _article_view(row) if row is not None else None

    def list_articles(self) -> list[ArticleView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Article)
                .where(Article.user_id == self.user_id)
                .order_by(col(Article.published_at), col(Article.created_at)),
            ).all()
            return [_article_view(row) for row in rows]

    def count_articles(self, *, user_id: str | None = None) -> int:
        scope = user_id or self.user_id
        with Session(self.engine) as session:
            return int(
                session.exec(
                    select(func.count()).select_from(Article).where(Article.user_id == scope),
                ).one(),
            )

    def count_read_unstarred(self, *, user_id: str | None = None) -> int:
        scope = user_id or self.user_id
        with Session(self.engine) as session:
            return int(
                session.exec(
                    select(func.count())
                    .select_from(Article)
                    .where(
                        Article.user_id == scope,
                        col(Article.is_read).is_(True),
                        col(Article.is_starred).is_(False),
                    ),
                ).one(),
            )

    def list_read_unstarred(
        self,
        *,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetentionCandidate]:
        """Oldest-published read and unstarred rows first; unknown dates sort first."""

        if limit <= 0:
            return []
        scope = user_id or self.user_id
        with Session(self.engine) as session:
            rows = session.exec(
                select(Article.article_id, Article.provider_id, Article.feed_id)
                .where(
                    Article.user_id == scope,
                    col(Article.is_read).is_(True),
                    col(Article.is_starred).is_(False),
                )
                .order_by(
                    col(Article.published_at).asc(),
                    col(Article.created_at).asc(),
                    col(Article.article_id).asc(),
                )
                .limit(limit),
            ).all()
        return [
            RetentionCandidate(article_id=article_id, provider_id=provider_id, feed_id=feed_id)
            for article_id, provider_id, feed_id in rows
        ]

    def delete_read_unstarred(
        self,
        article_ids: Sequence[str],
        *,
        user_id: str | None = None,
    ) -> int:
        """Delete the given rows, skipping any that became unread or starred meanwhile."""

        if not article_ids:
            return 0
        scope = user_id or self.user_id
        deleted = 0
        with Session(self.engine) as session:
            for batch in chunked(list(article_ids), MAX_SQL_VARIABLES):
                result = session.exec(
                    delete(Article).where(
                        col(Article.user_id) == scope,
                        col(Article.article_id).in_(batch),
                        col(Article.is_read).is_(True),
                        col(Article.is_starred).is_(False),
                    ),
                )
                deleted += int(result.rowcount or 0)
            session.commit()
        return deleted

    # Deletion tracking

    def get_deletion_records(self, provider_ids: Sequence[str]) -> dict[str, DeletionRecord]:
        records: dict[str, DeletionRecord] = {}
        if not provider_ids:
            return records

        with Session(self.engine) as session:
            for batch in chunked(list(dict.fromkeys(provider_ids)), MAX_SQL_VARIABLES):
                rows = session.exec(
                    select(DeletedArticle).where(col(DeletedArticle.provider_id).in_(batch)),
                ).all()
                for row in rows:
                    records[row.provider_id] = DeletionRecord(
                        provider_id=row.provider_id,
                        was_read=row.was_read,
                        feed_id=row.feed_id,
                        deleted_at=to_utc_aware_datetime(row.deleted_at),
                    )
        return records

    def insert_deletion_records(
        self,
        records: Sequence[DeletionRecord],
        *,
        deleted_at: datetime,
    ) -> int:
        """Insert records, leaving existing ones untouched; returns how many were new."""

        if not records:
            return 0

        deleted_db = to_db_datetime(deleted_at)
        unique = {record.provider_id: record for record in records}
        inserted = 0
        with Session(self.engine) as session:
            for batch in chunked(list(unique.values()), MAX_SQL_VARIABLES // 4):
                statement = sqlite_insert(DeletedArticle).values(
                    [
                        {
                            "provider_id": record.provider_id,
                            "was_read": record.was_read,
                            "feed_id": record.feed_id,
                            "deleted_at": (
                                to_db_datetime(record.deleted_at)
                                if record.deleted_at is not None
                                else deleted_db
                            ),
                        }
                        for record in batch
                    ],
                )
                result = session.exec(
                    statement.on_conflict_do_nothing(index_elements=["provider_id"]),
                )
                inserted += int(result.rowcount or 0)
            session.commit()
        return inserted

    def delete_deletion_records(self, provider_ids: Sequence[str]) -> int:
        if not provider_ids:
            return 0
        deleted = 0
        with Session(self.engine) as session:
            for batch in chunked(list(dict.fromkeys(provider_ids)), MAX_SQL_VARIABLES):
                result = session.exec(
                    delete(DeletedArticle).where(col(DeletedArticle.provider_id).in_(batch)),
                )
                deleted += int(result.rowcount or 0)
            session.commit()
        return deleted

    def purge_deletion_records(self, *, cutoff: datetime) -> int:
        with Session(self.engine) as session:
            result = session.exec(
                delete(DeletedArticle).where(
                    col(DeletedArticle.deleted_at) < to_db_datetime(cutoff),
                ),
            )
            session.commit()
            return int(result.rowcount or 0)

    def count_deletion_records(self) -> int:
        with Session(self.engine) as session:
            return int(session.exec(select(func.count()).select_from(DeletedArticle)).one())

    def _ensure_actor_context(self) -> None:
        with Session(self.engine) as session:
            user = session.get(AppUser, self.user_id)
            if user is None:
                session.add(
                    AppUser(
                        user_id=self.user_id,
                        display_name=self.user_name,
                        created_at=utc_now(),
                    ),
                )
                session.commit()


def _article_view(row: Article) -> ArticleView:
    return ArticleView(
        article_id=row.article_id,
        provider_id=row.provider_id,
        feed_id=row.feed_id,
        title=row.title,
        url=row.url,
        published_at=_optional_aware(row.published_at),
        is_read=row.is_read,
        is_starred=row.is_starred,
        last_sync_update=_optional_aware(row.last_sync_update),
    )


def _optional_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return to_utc_aware_datetime(value)
