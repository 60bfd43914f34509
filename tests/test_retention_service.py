from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
from sqlalchemy.exc import OperationalError

from reader_sync.config import RetentionSettings
from reader_sync.storage.common import utc_now
from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.models import DeletionRecord
from reader_sync.sync.services.retention_service import RetentionEnforcer
from reader_sync.sync.services.tracker_service import DeletionTracker

pytestmark = [
    allure.epic("Retention Enforcer"),
    allure.feature("Track Then Delete"),
]

BASE = datetime(2026, 1, 1, tzinfo=UTC)
SYNCED_AT = datetime(2026, 10, 19, tzinfo=UTC)


def _enforcer(repository: SQLiteRepository, **overrides) -> RetentionEnforcer:
    return RetentionEnforcer(
        repository=repository,
        tracker=DeletionTracker(repository=repository),
        retention_settings=RetentionSettings(**overrides),
    )


def _seed(repository, make_article, *, read: int, starred: int = 0, unread: int = 0) -> None:
    articles = []
    for index in range(read):
        articles.append(
            make_article(f"read-{index}", is_read=True, published_at=BASE + timedelta(hours=index)),
        )
    for index in range(starred):
        articles.append(
            make_article(f"starred-{index}", is_read=True, is_starred=True, published_at=BASE),
        )
    for index in range(unread):
        articles.append(make_article(f"unread-{index}", published_at=BASE))
    for start in range(0, len(articles), 50):
        repository.upsert_articles(articles[start : start + 50], synced_at=SYNCED_AT)


def test_no_work_when_under_limit(repository: SQLiteRepository, make_article):
    _seed(repository, make_article, read=5)

    result = _enforcer(repository).enforce_retention_limit(repository.user_id, 5)

    assert result.deleted_count == 0
    assert result.chunks_processed == 0
    assert repository.count_articles() == 5


def test_deletes_oldest_read_unstarred_in_chunks_and_tracks_them(
    repository: SQLiteRepository,
    make_article,
):
    _seed(repository, make_article, read=450, starred=10, unread=40)
    assert repository.count_articles() == 500

    result = _enforcer(repository).enforce_retention_limit(repository.user_id, 100)

    assert result.deleted_count == 400
    assert result.chunks_processed == 2
    assert result.tracked_count == 400
    assert result.errors == []
    assert repository.count_articles() == 100
    assert repository.count_deletion_records() == 400
    remaining_read = {c.provider_id for c in repository.list_read_unstarred(limit=100)}
    assert remaining_read == {f"read-{index}" for index in range(400, 450)}
    tracked = repository.get_deletion_records(["read-0", "read-399", "read-400"])
    assert set(tracked) == {"read-0", "read-399"}
    assert tracked["read-0"].was_read is True


def test_starred_and_unread_rows_are_never_deleted(repository: SQLiteRepository, make_article):
    _seed(repository, make_article, read=3, starred=4, unread=5)

    result = _enforcer(repository).enforce_retention_limit(repository.user_id, 0)

    assert result.deleted_count == 3
    assert repository.count_articles() == 9
    assert repository.count_read_unstarred() == 0


def test_tracking_failure_stops_pass_before_delete(
    repository: SQLiteRepository,
    make_article,
    monkeypatch,
):
    _seed(repository, make_article, read=5)
    original = repository.insert_deletion_records
    calls = {"count": 0}

    def _fail_second_chunk(records, *, deleted_at):
        calls["count"] += 1
        if calls["count"] == 2:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return original(records, deleted_at=deleted_at)

    monkeypatch.setattr(repository, "insert_deletion_records", _fail_second_chunk)

    result = _enforcer(repository, chunk_size=2).enforce_retention_limit(repository.user_id, 0)

    assert result.chunks_processed == 1
    assert result.deleted_count == 2
    assert len(result.errors) == 1
    assert repository.count_articles() == 3
    assert repository.count_deletion_records() == 2


def test_row_starred_between_track_and_delete_is_kept_and_untracked(
    repository: SQLiteRepository,
    make_article,
    monkeypatch,
):
    _seed(repository, make_article, read=2)
    original = repository.insert_deletion_records

    def _star_after_tracking(records, *, deleted_at):
        inserted = original(records, deleted_at=deleted_at)
        repository.mark_article_state("read-0", is_starred=True)
        return inserted

    monkeypatch.setattr(repository, "insert_deletion_records", _star_after_tracking)

    result = _enforcer(repository).enforce_retention_limit(repository.user_id, 0)

    assert result.deleted_count == 1
    assert result.tracked_count == 1
    assert repository.get_article("read-0") is not None
    assert set(repository.get_deletion_records(["read-0", "read-1"])) == {"read-1"}


def test_cleanup_read_articles_deletes_batch_and_purges_tracker(
    repository: SQLiteRepository,
    make_article,
):
    _seed(repository, make_article, read=6, starred=1, unread=2)
    repository.insert_deletion_records(
        [DeletionRecord(provider_id="ancient", was_read=True, feed_id=None)],
        deleted_at=utc_now() - timedelta(days=200),
    )

    result = _enforcer(repository, chunk_size=2).cleanup_read_articles(repository.user_id, 4)

    assert result.read_articles_deleted == 4
    assert result.tracking_entries_created == 4
    assert result.chunks_processed == 2
    assert result.tracker_records_purged == 1
    assert result.errors == []
    assert repository.count_articles() == 5
    assert repository.count_deletion_records() == 4


def test_cleanup_with_zero_batch_size_deletes_nothing(
    repository: SQLiteRepository,
    make_article,
):
    _seed(repository, make_article, read=3)

    result = _enforcer(repository, cleanup_batch_size=100).cleanup_read_articles(
        repository.user_id,
        0,
    )

    assert result.read_articles_deleted == 0
    assert result.tracking_entries_created == 0
    assert result.chunks_processed == 0
    assert repository.count_articles() == 3
    assert repository.count_deletion_records() == 0
