"""CLI entrypoint for reader-sync."""

from datetime import datetime
from pathlib import Path

import rich_click as click

from reader_sync import __version__
from reader_sync.sync.controllers import (
    RetentionCleanupCommand,
    RetentionEnforceCommand,
    SyncCliController,
    SyncRunCommand,
    SyncStatusCommand,
    TrackerPurgeCommand,
    UsageShowCommand,
)

click.rich_click.USE_MARKDOWN = True
SYNC_CONTROLLER = SyncCliController()


@click.group()
@click.version_option(version=__version__, prog_name="reader-sync")
def reader_sync() -> None:
    """Reader sync CLI."""


@reader_sync.group()
def sync() -> None:
    """Upstream sync commands."""


@sync.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def sync_run(db_path: Path | None) -> None:
    """Run one sync pass against the upstream provider."""

    _emit_lines(SYNC_CONTROLLER.run_sync(SyncRunCommand(db_path=db_path)))


@sync.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--recent-runs",
    type=click.IntRange(min=1, max=50),
    default=5,
    show_default=True,
    help="How many latest runs to display.",
)
def sync_status(db_path: Path | None, recent_runs: int) -> None:
    """Show watermark, store size, and recent sync runs."""

    _emit_lines(
        SYNC_CONTROLLER.status(
            SyncStatusCommand(db_path=db_path, recent_runs=recent_runs),
        ),
    )


@reader_sync.group()
def retention() -> None:
    """Article retention commands."""


@retention.command("enforce")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    default=None,
    help="Override READER_SYNC_ARTICLES_RETENTION_LIMIT for this run.",
)
def retention_enforce(db_path: Path | None, limit: int | None) -> None:
    """Delete the oldest read, unstarred articles above the retention limit."""

    _emit_lines(
        SYNC_CONTROLLER.enforce_retention(
            RetentionEnforceCommand(db_path=db_path, limit=limit),
        ),
    )


@retention.command("cleanup-read")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=None,
    help="Max read articles to delete; defaults to READER_SYNC_CLEANUP_BATCH_SIZE.",
)
def retention_cleanup_read(db_path: Path | None, batch_size: int | None) -> None:
    """Delete read, unstarred articles and purge old deletion records."""

    _emit_lines(
        SYNC_CONTROLLER.cleanup_read(
            RetentionCleanupCommand(db_path=db_path, batch_size=batch_size),
        ),
    )


@reader_sync.group()
def tracker() -> None:
    """Deletion tracker commands."""


@tracker.command("purge")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--days",
    type=click.IntRange(min=1),
    default=None,
    help="Override READER_SYNC_TRACKER_RETENTION_DAYS for this run.",
)
def tracker_purge(db_path: Path | None, days: int | None) -> None:
    """Remove deletion records older than the tracker retention."""

    _emit_lines(SYNC_CONTROLLER.purge_tracker(TrackerPurgeCommand(db_path=db_path, days=days)))


@reader_sync.group()
def usage() -> None:
    """Provider usage commands."""


@usage.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--service", default=None, help="Service name; defaults to the configured provider.")
@click.option(
    "--date",
    "usage_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Day to inspect (UTC), defaults to today.",
)
def usage_show(db_path: Path | None, service: str | None, usage_date: datetime | None) -> None:
    """Show call count and quota zones for one day."""

    _emit_lines(
        SYNC_CONTROLLER.usage(
            UsageShowCommand(
                db_path=db_path,
                service=service,
                usage_date=usage_date.date() if usage_date is not None else None,
            ),
        ),
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    reader_sync()
