"""Initial sync schema: articles, deletion tracking, sync metadata, usage ledger."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("ix_users_user_id", "users", ["user_id"])
    op.create_index("ix_users_display_name", "users", ["display_name"])

    op.create_table(
        "sync_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("mode", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fetched_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("persisted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resurrected_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conflicts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "retention_deleted_count",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("error_summary", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_sync_runs_user_id", "sync_runs", ["user_id"])
    op.create_index("ix_sync_runs_mode", "sync_runs", ["mode"])
    op.create_index("ix_sync_runs_status", "sync_runs", ["status"])

    op.create_table(
        "sync_metadata",
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "key", name="pk_sync_metadata"),
    )

    op.create_table(
        "articles",
        sa.Column("article_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), server_default="default_user", nullable=False),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("feed_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("author", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("is_starred", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("last_sync_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_local_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("article_id"),
        sa.UniqueConstraint("user_id", "provider_id", name="uq_articles_user_provider_id"),
    )
    op.create_index("ix_articles_user_id", "articles", ["user_id"])
    op.create_index("ix_articles_provider_id", "articles", ["provider_id"])
    op.create_index("ix_articles_feed_id", "articles", ["feed_id"])
    op.create_index("ix_articles_published_at", "articles", ["published_at"])
    op.create_index(
        "idx_articles_user_retention",
        "articles",
        ["user_id", "is_read", "is_starred", "published_at"],
    )

    op.create_table(
        "deleted_articles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider_id", sa.String(), nullable=False),
        sa.Column("was_read", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("feed_id", sa.String(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_id", name="uq_deleted_articles_provider_id"),
    )
    op.create_index("ix_deleted_articles_deleted_at", "deleted_articles", ["deleted_at"])

    op.create_table(
        "api_usage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("service", sa.String(), nullable=False),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("zone1_usage", sa.Integer(), nullable=True),
        sa.Column("zone1_limit", sa.Integer(), nullable=True),
        sa.Column("zone2_usage", sa.Integer(), nullable=True),
        sa.Column("zone2_limit", sa.Integer(), nullable=True),
        sa.Column("reset_after", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("service", "usage_date", name="uq_api_usage_service_date"),
    )
    op.create_index("ix_api_usage_service", "api_usage", ["service"])
    op.create_index("ix_api_usage_usage_date", "api_usage", ["usage_date"])


def downgrade() -> None:
    op.drop_table("api_usage")
    op.drop_table("deleted_articles")
    op.drop_table("articles")
    op.drop_table("sync_metadata")
    op.drop_table("sync_runs")
    op.drop_table("users")
