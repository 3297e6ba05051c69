"""Named time windows and the calendar ranges derived from them."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from .errors import ValidationError


UTC = timezone.utc
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class TimeFilter(str, Enum):
    TWO_WEEKS = "2w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    ALL = "all"

    @classmethod
    def parse(cls, value: "TimeFilter | str") -> "TimeFilter":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(item.value for item in cls)
            raise ValidationError(f"Unknown time filter {value!r}; expected one of {choices}") from exc

    @property
    def label(self) -> str:
        return _LABELS[self]


_OFFSETS: dict[TimeFilter, timedelta] = {
    TimeFilter.TWO_WEEKS: timedelta(days=14),
    TimeFilter.ONE_MONTH: timedelta(days=30),
    TimeFilter.THREE_MONTHS: timedelta(days=90),
    TimeFilter.SIX_MONTHS: timedelta(days=180),
}

_LABELS: dict[TimeFilter, str] = {
    TimeFilter.TWO_WEEKS: "Last 2 Weeks",
    TimeFilter.ONE_MONTH: "Last Month",
    TimeFilter.THREE_MONTHS: "Last 3 Months",
    TimeFilter.SIX_MONTHS: "Last 6 Months",
    TimeFilter.ALL: "All Time",
}


def start_date(time_filter: TimeFilter | str, now: datetime | None = None) -> datetime:
    """Return the inclusive lower bound of the window ending at ``now``."""

    time_filter = TimeFilter.parse(time_filter)
    if time_filter is TimeFilter.ALL:
        return EPOCH
    now = _utc(now or datetime.now(UTC))
    return now - _OFFSETS[time_filter]


def date_range(time_filter: TimeFilter | str, now: datetime | None = None) -> list[str]:
    """Every calendar day from the window start to today, inclusive."""

    now = _utc(now or datetime.now(UTC))
    current = start_date(time_filter, now).date()
    end = now.date()
    days: list[str] = []
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def to_date_string(value: datetime) -> str:
    return _utc(value).date().isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp as returned by GitHub."""

    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return _utc(datetime.fromisoformat(value))


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


__all__ = [
    "EPOCH",
    "TimeFilter",
    "date_range",
    "parse_timestamp",
    "start_date",
    "to_date_string",
]
