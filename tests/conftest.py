"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from reader_sync.storage.repository import SQLiteRepository
from reader_sync.sync.models import IncomingArticle

ArticleFactory = Callable[..., IncomingArticle]


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository(tmp_path / "reader.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def make_article() -> ArticleFactory:
    def _make(
        provider_id: str,
        *,
        is_read: bool = False,
        is_starred: bool = False,
        published_at: datetime | None = None,
        feed_id: str | None = "feed/https://example.com/rss",
        title: str | None = None,
    ) -> IncomingArticle:
        return IncomingArticle(
            provider_id=provider_id,
            feed_id=feed_id,
            title=title or f"Title {provider_id}",
            content=f"<p>Body {provider_id}</p>",
            url=f"https://example.com/{provider_id}",
            published_at=published_at or datetime(2026, 10, 1, tzinfo=UTC),
            is_read=is_read,
            is_starred=is_starred,
        )

    return _make
