"""Configuration helpers for waiver cadences, roster sizing and settings."""

from .schedule import (
    DAY_NAMES,
    DAY_NUMBERS,
    DEFAULT_ROSTER_MAX,
    DEFAULT_ROSTER_SLOTS,
    DEFAULT_TIMEZONE,
    CadenceRule,
    get_cadence,
    iter_cadences,
    next_daily_occurrence,
    next_weekly_occurrence,
    parse_day,
    resolve_timezone,
)
from .settings import Settings, load_settings

__all__ = [
    "DAY_NAMES",
    "DAY_NUMBERS",
    "DEFAULT_ROSTER_MAX",
    "DEFAULT_ROSTER_SLOTS",
    "DEFAULT_TIMEZONE",
    "CadenceRule",
    "Settings",
    "get_cadence",
    "iter_cadences",
    "load_settings",
    "next_daily_occurrence",
    "next_weekly_occurrence",
    "parse_day",
    "resolve_timezone",
]
