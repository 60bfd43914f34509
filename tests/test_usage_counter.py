from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path

import allure
import pytest
from sqlalchemy.exc import OperationalError

from reader_sync.storage.repository import SQLiteRepository
from reader_sync.usage.counter import (
    CounterError,
    UsageCounter,
    ZoneFields,
    zone_fields_from_headers,
)

pytestmark = [
    allure.epic("Usage Counter"),
    allure.feature("Quota Ledger"),
]

DAY = date(2026, 10, 19)


@pytest.fixture()
def counter(repository: SQLiteRepository) -> UsageCounter:
    return UsageCounter(repository.engine)


def test_increment_creates_then_accumulates(counter: UsageCounter):
    counter.increment_usage("inoreader", DAY)
    counter.increment_usage("inoreader", DAY, 4)
    counter.increment_usage("inoreader", DAY, -2)

    snapshot = counter.get_usage("inoreader", DAY)

    assert snapshot is not None
    assert snapshot.count == 3
    assert counter.get_usage("inoreader", date(2026, 10, 18)) is None
    assert counter.get_usage("other", DAY) is None


def test_concurrent_increments_are_exact(tmp_path: Path):
    repository = SQLiteRepository(tmp_path / "usage.db", busy_timeout_ms=30_000)
    repository.init_schema()
    counter = UsageCounter(repository.engine)

    deltas = [index % 7 - 3 for index in range(500)]
    with ThreadPoolExecutor(max_workers=16) as pool:
        futures = [
            pool.submit(counter.increment_usage, "inoreader", DAY, delta) for delta in deltas
        ]
        for future in futures:
            future.result()

    snapshot = counter.get_usage("inoreader", DAY)
    assert snapshot is not None
    assert snapshot.count == sum(deltas)
    repository.close()


def test_update_zones_writes_only_reported_fields(counter: UsageCounter):
    counter.update_zones("inoreader", DAY, ZoneFields(zone1_usage=10, zone1_limit=100))
    counter.increment_usage("inoreader", DAY, 2)
    counter.update_zones("inoreader", DAY, ZoneFields(zone2_usage=5, reset_after=3600))

    snapshot = counter.get_usage("inoreader", DAY)

    assert snapshot is not None
    assert snapshot.count == 2
    assert snapshot.zones == ZoneFields(
        zone1_usage=10,
        zone1_limit=100,
        zone2_usage=5,
        zone2_limit=None,
        reset_after=3600,
    )


def test_update_zones_creates_row_with_zero_count(counter: UsageCounter):
    counter.update_zones("inoreader", DAY, ZoneFields(zone1_usage=1))

    snapshot = counter.get_usage("inoreader", DAY)

    assert snapshot is not None
    assert snapshot.count == 0


def test_empty_zone_update_is_noop(counter: UsageCounter):
    counter.update_zones("inoreader", DAY, ZoneFields())

    assert counter.get_usage("inoreader", DAY) is None


def test_zone_fields_from_headers_parses_provider_format():
    zones = zone_fields_from_headers(
        {
            "x-reader-zone1-usage": "1,234",
            "X-Reader-Zone1-Limit": "10,000",
            "X-Reader-Zone2-Usage": "not-a-number",
            "X-Reader-Limits-Reset-After": "3599.75",
            "Content-Type": "application/json",
        },
    )

    assert zones == ZoneFields(
        zone1_usage=1234,
        zone1_limit=10000,
        zone2_usage=None,
        zone2_limit=None,
        reset_after=3599,
    )
    assert zone_fields_from_headers({}).is_empty()


@pytest.mark.parametrize(
    ("count", "level", "allowed"),
    [(10, "ok", True), (80, "warning", True), (95, "critical", True), (100, "critical", False)],
)
def test_check_rate_limit_levels(counter: UsageCounter, count: int, level: str, allowed: bool):
    counter.increment_usage("inoreader", DAY, count)

    status = counter.check_rate_limit("inoreader", DAY, 100)

    assert status.level == level
    assert status.allowed is allowed
    assert status.remaining == 100 - count


def test_check_rate_limit_without_usage(counter: UsageCounter):
    status = counter.check_rate_limit("inoreader", DAY, 100)

    assert status.count == 0
    assert status.level == "ok"


def test_prune_usage_removes_older_days(counter: UsageCounter):
    counter.increment_usage("inoreader", date(2026, 9, 1))
    counter.increment_usage("inoreader", DAY)

    assert counter.prune_usage(before=date(2026, 10, 1)) == 1
    assert counter.get_usage("inoreader", DAY) is not None


def test_record_provider_call_counts_and_snapshots(counter: UsageCounter):
    counter.record_provider_call(
        "inoreader",
        {"X-Reader-Zone1-Usage": "42"},
        cost=2,
        usage_date=DAY,
    )
    counter.record_provider_call("inoreader", None, usage_date=DAY)

    snapshot = counter.get_usage("inoreader", DAY)
    assert snapshot is not None
    assert snapshot.count == 3
    assert snapshot.zones.zone1_usage == 42


def test_storage_failures_raise_counter_error(counter: UsageCounter, monkeypatch):
    def _fail(*_args, **_kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr("reader_sync.usage.counter.Session.exec", _fail)

    with pytest.raises(CounterError):
        counter.increment_usage("inoreader", DAY)
    with pytest.raises(CounterError):
        counter.update_zones("inoreader", DAY, ZoneFields(zone1_usage=1))


def test_record_provider_call_never_raises(counter: UsageCounter, monkeypatch, caplog):
    def _fail(*_args, **_kwargs):
        raise CounterError(message="ledger unavailable")

    monkeypatch.setattr(counter, "increment_usage", _fail)

    with caplog.at_level(logging.ERROR, logger="reader_sync.usage.counter"):
        counter.record_provider_call("inoreader", {}, usage_date=DAY)

    assert "ledger unavailable" in caplog.text
