"""Errors raised by the sync pipeline and its storage-facing services."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SyncError(Exception):
    """Base sync pipeline error."""

    message: str
    code: str = "sync_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class WatermarkParseError(SyncError):
    """Stored watermark is not a usable epoch timestamp."""

    code: str = "watermark_parse_error"
    raw_value: str | None = None


@dataclass(slots=True)
class PersistError(SyncError):
    """One article could not be written to the article store."""

    code: str = "persist_error"
    provider_id: str | None = None


@dataclass(slots=True)
class TrackingError(SyncError):
    """Deletion records could not be written; the matching delete must not run."""

    code: str = "tracking_error"
    provider_ids: tuple[str, ...] = ()
