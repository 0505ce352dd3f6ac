"""Default waiver cadences and roster sizing rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Dict, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo


DEFAULT_TIMEZONE = "America/New_York"

DAY_NUMBERS: Mapping[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

DAY_NAMES: Mapping[int, str] = {number: name for name, number in DAY_NUMBERS.items()}


@dataclass(frozen=True)
class CadenceRule:
    name: str
    at: time
    day: Optional[str] = None
    description: str = ""

    @property
    def weekday(self) -> Optional[int]:
        return parse_day(self.day) if self.day is not None else None


_CADENCES: Dict[str, CadenceRule] = {
    "waiver_processing": CadenceRule(
        name="waiver_processing",
        day="wednesday",
        at=time(3, 0),
        description="Resolve pending claims",
    ),
    "priority_update": CadenceRule(
        name="priority_update",
        day="tuesday",
        at=time(23, 59),
        description="Re-rank waiver priority by standings",
    ),
    "cleanup": CadenceRule(
        name="cleanup",
        at=time(4, 0),
        description="Expire stale claims and purge old history",
    ),
}

# Slot counts used when a league has no roster settings; sums to 16.
DEFAULT_ROSTER_SLOTS: Mapping[str, int] = {
    "qb": 1,
    "rb": 2,
    "wr": 2,
    "te": 1,
    "flex": 1,
    "dst": 1,
    "k": 1,
    "bench": 6,
    "ir": 1,
}

DEFAULT_ROSTER_MAX = sum(DEFAULT_ROSTER_SLOTS.values())


def iter_cadences() -> Iterable[CadenceRule]:
    """Return an iterator of the built-in cadences."""

    return _CADENCES.values()


def get_cadence(name: str) -> CadenceRule:
    """Fetch a built-in cadence, raising KeyError if missing."""

    key = name.lower()
    if key not in _CADENCES:
        raise KeyError(f"No cadence configured named {name!r}")
    return _CADENCES[key]


def parse_day(day: str | int) -> int:
    """Resolve a day name (or ``date.weekday()`` number) to a weekday number."""

    if isinstance(day, int):
        if 0 <= day <= 6:
            return day
        raise ValueError(f"weekday must be within 0-6, got {day}")
    key = day.strip().lower()
    if key not in DAY_NUMBERS:
        raise ValueError(f"Unknown day name {day!r}")
    return DAY_NUMBERS[key]


def resolve_timezone(name: str | None) -> ZoneInfo | timezone:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def next_weekly_occurrence(after: datetime, weekday: int, at: time, tz_name: str | None = None) -> datetime:
    """First ``weekday`` at ``at`` (local to ``tz_name``) strictly after ``after``.

    ``after`` must be timezone-aware; the result is returned in UTC.
    """

    tz = resolve_timezone(tz_name)
    local = after.astimezone(tz)
    days_ahead = (weekday - local.weekday()) % 7
    candidate_date = local.date() + timedelta(days=days_ahead)
    candidate = datetime.combine(candidate_date, at, tzinfo=tz)
    if candidate <= local:
        candidate = datetime.combine(candidate_date + timedelta(days=7), at, tzinfo=tz)
    return candidate.astimezone(timezone.utc)


def next_daily_occurrence(after: datetime, at: time, tz_name: str | None = None) -> datetime:
    tz = resolve_timezone(tz_name)
    local = after.astimezone(tz)
    candidate = datetime.combine(local.date(), at, tzinfo=tz)
    if candidate <= local:
        candidate = datetime.combine(local.date() + timedelta(days=1), at, tzinfo=tz)
    return candidate.astimezone(timezone.utc)
