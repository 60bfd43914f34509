"""Sync watermark parsing and fetch mode decision."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from reader_sync.sync.errors import WatermarkParseError
from reader_sync.sync.models import FullSync, IncrementalSync, SyncMode

logger = logging.getLogger(__name__)

WATERMARK_KEY = "last_incremental_sync_timestamp"
LAST_SYNC_TIME_KEY = "last_sync_time"


def parse_watermark(raw_value: str | None) -> int | None:
    """Parse the stored epoch-seconds watermark; ``None`` means no previous sync."""

    if raw_value is None or not raw_value.strip():
        return None
    try:
        value = int(raw_value.strip())
    except ValueError as error:
        raise WatermarkParseError(
            message=f"Stored sync watermark is not an integer: {raw_value!r}",
            raw_value=raw_value,
        ) from error
    if value <= 0:
        raise WatermarkParseError(
            message=f"Stored sync watermark is not positive: {raw_value!r}",
            raw_value=raw_value,
        )
    return value


def resolve_sync_mode(
    raw_value: str | None,
    *,
    now: datetime,
    full_sync_after: timedelta,
) -> SyncMode:
    """Pick full or incremental fetch for a stored watermark at time ``now``."""

    try:
        since = parse_watermark(raw_value)
    except WatermarkParseError as error:
        logger.warning("Ignoring sync watermark: %s", error)
        return FullSync(reason="invalid watermark")

    if since is None:
        return FullSync(reason="no previous watermark")

    now_ts = int(now.timestamp())
    if since > now_ts:
        logger.warning("Sync watermark %s is in the future, falling back to full sync", since)
        return FullSync(reason="watermark in the future")
    if now_ts - since > int(full_sync_after.total_seconds()):
        return FullSync(reason="periodic refresh")
    return IncrementalSync(since=since)
