"""League configuration models."""

from __future__ import annotations

from datetime import datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

from waiverwire.config import (
    DEFAULT_ROSTER_SLOTS,
    DEFAULT_TIMEZONE,
    get_cadence,
    next_weekly_occurrence,
    parse_day,
)


_DEFAULT_PROCESSING = get_cadence("waiver_processing")


class WaiverMode(str, Enum):
    FAAB = "faab"
    PRIORITY = "priority"


class LeagueStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    COMPLETED = "COMPLETED"


class WaiverSettings(BaseModel):
    mode: WaiverMode = WaiverMode.FAAB
    budget: int = Field(default=100, ge=0)
    min_bid: int = Field(default=0, ge=0)
    process_day: str = _DEFAULT_PROCESSING.day or "wednesday"
    process_time: time = _DEFAULT_PROCESSING.at
    timezone: str = DEFAULT_TIMEZONE

    model_config = ConfigDict(frozen=True)

    @field_validator("process_day")
    @classmethod
    def _normalize_day(cls, value: str) -> str:
        parse_day(value)
        return value.strip().lower()

    @property
    def is_faab(self) -> bool:
        return self.mode is WaiverMode.FAAB

    @property
    def process_weekday(self) -> int:
        return parse_day(self.process_day)

    def next_processing_time(self, now: datetime) -> datetime:
        """Next scheduled resolution strictly after ``now`` (UTC)."""

        return next_weekly_occurrence(now, self.process_weekday, self.process_time, self.timezone)


class RosterSettings(BaseModel):
    qb: int = Field(default=DEFAULT_ROSTER_SLOTS["qb"], ge=0)
    rb: int = Field(default=DEFAULT_ROSTER_SLOTS["rb"], ge=0)
    wr: int = Field(default=DEFAULT_ROSTER_SLOTS["wr"], ge=0)
    te: int = Field(default=DEFAULT_ROSTER_SLOTS["te"], ge=0)
    flex: int = Field(default=DEFAULT_ROSTER_SLOTS["flex"], ge=0)
    dst: int = Field(default=DEFAULT_ROSTER_SLOTS["dst"], ge=0)
    k: int = Field(default=DEFAULT_ROSTER_SLOTS["k"], ge=0)
    bench: int = Field(default=DEFAULT_ROSTER_SLOTS["bench"], ge=0)
    ir: int = Field(default=DEFAULT_ROSTER_SLOTS["ir"], ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def max_size(self) -> int:
        return self.qb + self.rb + self.wr + self.te + self.flex + self.dst + self.k + self.bench + self.ir


class League(BaseModel):
    league_id: str = Field(..., min_length=1)
    name: str
    status: LeagueStatus = LeagueStatus.ACTIVE
    season: int
    current_week: int = Field(default=1, ge=1, le=18)
    commissioner_team_id: Optional[str] = None
    waiver_settings: Optional[WaiverSettings] = None
    roster_settings: RosterSettings = Field(default_factory=RosterSettings)

    model_config = ConfigDict(frozen=True)

    @property
    def waivers_enabled(self) -> bool:
        return self.waiver_settings is not None

    @property
    def is_active(self) -> bool:
        return self.status is LeagueStatus.ACTIVE
