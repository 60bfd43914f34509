"""Provider quota ledger keyed by service and day."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, delete, select

from reader_sync.storage.common import to_db_datetime, to_utc_aware_datetime, utc_now
from reader_sync.storage.sqlmodel_models import ApiUsage

logger = logging.getLogger(__name__)

WARNING_USAGE_RATIO = 0.80
CRITICAL_USAGE_RATIO = 0.95

ZONE1_USAGE_HEADER = "X-Reader-Zone1-Usage"
ZONE1_LIMIT_HEADER = "X-Reader-Zone1-Limit"
ZONE2_USAGE_HEADER = "X-Reader-Zone2-Usage"
ZONE2_LIMIT_HEADER = "X-Reader-Zone2-Limit"
RESET_AFTER_HEADER = "X-Reader-Limits-Reset-After"

_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")


@dataclass(slots=True)
class CounterError(Exception):
    """Usage ledger could not be read or written."""

    message: str
    code: str = "counter_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ZoneFields:
    """Point-in-time quota snapshot reported by the provider; ``None`` means not reported."""

    zone1_usage: int | None = None
    zone1_limit: int | None = None
    zone2_usage: int | None = None
    zone2_limit: int | None = None
    reset_after: int | None = None

    def as_columns(self) -> dict[str, int]:
        values = {
            "zone1_usage": self.zone1_usage,
            "zone1_limit": self.zone1_limit,
            "zone2_usage": self.zone2_usage,
            "zone2_limit": self.zone2_limit,
            "reset_after": self.reset_after,
        }
        return {name: value for name, value in values.items() if value is not None}

    def is_empty(self) -> bool:
        return not self.as_columns()


@dataclass(slots=True)
class UsageSnapshot:
    """Stored ledger row for one service and day."""

    service: str
    usage_date: date
    count: int
    zones: ZoneFields
    updated_at: datetime


@dataclass(slots=True)
class RateLimitStatus:
    """Daily call budget check result."""

    service: str
    usage_date: date
    count: int
    daily_limit: int
    level: str

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.count)

    @property
    def usage_ratio(self) -> float:
        if self.daily_limit <= 0:
            return 1.0
        return self.count / self.daily_limit

    @property
    def allowed(self) -> bool:
        return self.count < self.daily_limit


class UsageCounter:
    """Atomic per-(service, day) call counter with optional zone snapshots.

    Every write is a single upsert statement, so concurrent callers on separate
    connections never lose increments. No in-process locking is involved.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def increment_usage(self, service: str, usage_date: date, delta: int = 1) -> None:
        now = to_db_datetime(utc_now())
        statement = sqlite_insert(ApiUsage).values(
            service=service,
            usage_date=usage_date,
            count=delta,
            updated_at=now,
        )
        count_column = ApiUsage.__table__.c["count"]  # type: ignore[attr-defined]
        statement = statement.on_conflict_do_update(
            index_elements=["service", "usage_date"],
            set_={
                "count": count_column + statement.excluded["count"],
                "updated_at": statement.excluded.updated_at,
            },
        )
        self._execute(statement, action="increment usage", service=service)

    def update_zones(self, service: str, usage_date: date, zones: ZoneFields) -> None:
        """Write only the reported zone fields; other columns keep their values."""

        columns = zones.as_columns()
        if not columns:
            return

        now = to_db_datetime(utc_now())
        statement = sqlite_insert(ApiUsage).values(
            service=service,
            usage_date=usage_date,
            count=0,
            updated_at=now,
            **columns,
        )
        updates: dict[str, Any] = {name: statement.excluded[name] for name in columns}
        updates["updated_at"] = statement.excluded.updated_at
        statement = statement.on_conflict_do_update(
            index_elements=["service", "usage_date"],
            set_=updates,
        )
        self._execute(statement, action="update zones", service=service)

    def get_usage(self, service: str, usage_date: date) -> UsageSnapshot | None:
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(ApiUsage).where(
                        ApiUsage.service == service,
                        ApiUsage.usage_date == usage_date,
                    ),
                ).one_or_none()
        except SQLAlchemyError as error:
            raise CounterError(message=f"Failed to read usage for {service}: {error}") from error

        if row is None:
            return None
        return UsageSnapshot(
            service=row.service,
            usage_date=row.usage_date,
            count=row.count,
            zones=ZoneFields(
                zone1_usage=row.zone1_usage,
                zone1_limit=row.zone1_limit,
                zone2_usage=row.zone2_usage,
                zone2_limit=row.zone2_limit,
                reset_after=row.reset_after,
            ),
            updated_at=to_utc_aware_datetime(row.updated_at),
        )

    def check_rate_limit(
        self,
        service: str,
        usage_date: date,
        daily_limit: int,
    ) -> RateLimitStatus:
        snapshot = self.get_usage(service, usage_date)
        count = snapshot.count if snapshot is not None else 0
        ratio = count / daily_limit if daily_limit > 0 else 1.0

        level = "ok"
        if ratio >= CRITICAL_USAGE_RATIO:
            level = "critical"
            logger.warning(
                "%s usage is critical: %d/%d calls (%.0f%%)",
                service,
                count,
                daily_limit,
                ratio * 100,
            )
        elif ratio >= WARNING_USAGE_RATIO:
            level = "warning"
            logger.warning(
                "%s usage is high: %d/%d calls (%.0f%%)",
                service,
                count,
                daily_limit,
                ratio * 100,
            )

        return RateLimitStatus(
            service=service,
            usage_date=usage_date,
            count=count,
            daily_limit=daily_limit,
            level=level,
        )

    def prune_usage(self, *, before: date) -> int:
        try:
            with Session(self.engine) as session:
                result = session.exec(
                    delete(ApiUsage).where(col(ApiUsage.usage_date) < before),
                )
                session.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as error:
            raise CounterError(message=f"Failed to prune usage rows: {error}") from error

    def record_provider_call(
        self,
        service: str,
        headers: Mapping[str, str] | None,
        *,
        cost: int = 1,
        usage_date: date | None = None,
    ) -> None:
        """Account for one finished provider call; ledger failures are logged only."""

        day = usage_date or utc_now().date()
        try:
            self.increment_usage(service, day, cost)
            if headers:
                self.update_zones(service, day, zone_fields_from_headers(headers))
        except CounterError as error:
            logger.error("Failed to record %s API usage: %s", service, error)

    def _execute(self, statement: Any, *, action: str, service: str) -> None:
        try:
            with Session(self.engine) as session:
                session.exec(statement)
                session.commit()
        except SQLAlchemyError as error:
            raise CounterError(message=f"Failed to {action} for {service}: {error}") from error


def zone_fields_from_headers(headers: Mapping[str, str]) -> ZoneFields:
    """Parse provider quota headers, ignoring absent or malformed values."""

    lookup = {key.lower(): value for key, value in headers.items()}
    return ZoneFields(
        zone1_usage=_parse_count(lookup.get(ZONE1_USAGE_HEADER.lower())),
        zone1_limit=_parse_count(lookup.get(ZONE1_LIMIT_HEADER.lower())),
        zone2_usage=_parse_count(lookup.get(ZONE2_USAGE_HEADER.lower())),
        zone2_limit=_parse_count(lookup.get(ZONE2_LIMIT_HEADER.lower())),
        reset_after=_parse_seconds(lookup.get(RESET_AFTER_HEADER.lower())),
    )


def _parse_count(value: str | None) -> int | None:
    if value is None:
        return None
    match = _LEADING_INT_RE.match(value.replace(",", ""))
    return int(match.group(1)) if match else None


def _parse_seconds(value: str | None) -> int | None:
    if value is None:
        return None
    match = _LEADING_INT_RE.match(value)
    return int(match.group(1)) if match else None
