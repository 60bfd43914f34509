from __future__ import annotations

from datetime import UTC, datetime, timedelta

import allure
import pytest

from reader_sync.sync.errors import WatermarkParseError
from reader_sync.sync.models import FullSync, IncrementalSync
from reader_sync.sync.watermark import parse_watermark, resolve_sync_mode

pytestmark = [
    allure.epic("Sync Orchestrator"),
    allure.feature("Fetch Mode"),
]

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
WEEK = timedelta(days=7)


def _ts(value: datetime) -> str:
    return str(int(value.timestamp()))


def test_parse_watermark_returns_none_when_absent() -> None:
    assert parse_watermark(None) is None
    assert parse_watermark("   ") is None


def test_parse_watermark_rejects_garbage_and_non_positive() -> None:
    with pytest.raises(WatermarkParseError) as error:
        parse_watermark("yesterday")
    assert error.value.raw_value == "yesterday"
    assert error.value.code == "watermark_parse_error"

    with pytest.raises(WatermarkParseError):
        parse_watermark("0")


def test_absent_watermark_forces_full_sync() -> None:
    mode = resolve_sync_mode(None, now=NOW, full_sync_after=WEEK)

    assert isinstance(mode, FullSync)
    assert mode.name == "full"


def test_recent_watermark_gives_incremental_sync() -> None:
    since = NOW - timedelta(hours=6)

    mode = resolve_sync_mode(_ts(since), now=NOW, full_sync_after=WEEK)

    assert mode == IncrementalSync(since=int(since.timestamp()))
    assert mode.name == "incremental"


def test_watermark_exactly_seven_days_old_is_still_incremental() -> None:
    mode = resolve_sync_mode(_ts(NOW - WEEK), now=NOW, full_sync_after=WEEK)

    assert isinstance(mode, IncrementalSync)


def test_stale_watermark_forces_full_sync() -> None:
    mode = resolve_sync_mode(
        _ts(NOW - WEEK - timedelta(seconds=1)),
        now=NOW,
        full_sync_after=WEEK,
    )

    assert mode == FullSync(reason="periodic refresh")


@pytest.mark.parametrize("raw", ["not-a-number", "-5", "0"])
def test_unusable_watermark_falls_back_to_full_sync(raw: str) -> None:
    mode = resolve_sync_mode(raw, now=NOW, full_sync_after=WEEK)

    assert mode == FullSync(reason="invalid watermark")


def test_future_watermark_falls_back_to_full_sync() -> None:
    mode = resolve_sync_mode(_ts(NOW + timedelta(hours=1)), now=NOW, full_sync_after=WEEK)

    assert mode == FullSync(reason="watermark in the future")
