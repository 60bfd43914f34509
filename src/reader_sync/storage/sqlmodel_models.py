"""SQLModel ORM tables for sync storage."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class AppUser(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]

    user_id: str = Field(primary_key=True, index=True)
    display_name: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SyncRun(SQLModel, table=True):
    __tablename__ = "sync_runs"  # type: ignore[bad-override]

    run_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    mode: str = Field(index=True)
    status: str = Field(index=True)
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    fetched_count: int = 0
    persisted_count: int = 0
    skipped_count: int = 0
    resurrected_count: int = 0
    failed_count: int = 0
    conflicts_count: int = 0
    retention_deleted_count: int = 0
    error_summary: str | None = Field(default=None, sa_column=Column(Text))


class SyncMetadata(SQLModel, table=True):
    __tablename__ = "sync_metadata"  # type: ignore[bad-override]
    __table_args__ = (PrimaryKeyConstraint("user_id", "key", name="pk_sync_metadata"),)

    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
        ),
    )
    key: str
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Article(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("user_id", "provider_id", name="uq_articles_user_provider_id"),
        Index(
            "idx_articles_user_retention",
            "user_id",
            "is_read",
            "is_starred",
            "published_at",
        ),
    )

    article_id: str = Field(primary_key=True)
    user_id: str = Field(
        default=DEFAULT_USER_ID,
        sa_column=Column(
            ForeignKey("users.user_id", ondelete="CASCADE"),
            nullable=False,
            server_default=DEFAULT_USER_ID,
            index=True,
        ),
    )
    provider_id: str = Field(index=True)
    feed_id: str | None = Field(default=None, index=True)
    title: str
    author: str | None = None
    content: str = Field(sa_column=Column(Text, nullable=False))
    url: str
    published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    is_read: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="0"),
    )
    is_starred: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="0"),
    )
    last_sync_update: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    last_local_update: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DeletedArticle(SQLModel, table=True):
    __tablename__ = "deleted_articles"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("provider_id", name="uq_deleted_articles_provider_id"),)

    id: int | None = Field(default=None, primary_key=True)
    provider_id: str
    was_read: bool = Field(
        default=True,
        sa_column=Column(Boolean, nullable=False, server_default="1"),
    )
    feed_id: str | None = None
    deleted_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )


class ApiUsage(SQLModel, table=True):
    __tablename__ = "api_usage"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("service", "usage_date", name="uq_api_usage_service_date"),
    )

    id: int | None = Field(default=None, primary_key=True)
    service: str = Field(index=True)
    usage_date: date = Field(sa_column=Column(Date, nullable=False, index=True))
    count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    zone1_usage: int | None = None
    zone1_limit: int | None = None
    zone2_usage: int | None = None
    zone2_limit: int | None = None
    reset_after: int | None = None
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
