"""Team and roster models referenced by the waiver engine."""

from __future__ import annotations

from typing import Optional, Tuple

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from waiverwire.config import DEFAULT_ROSTER_MAX


class RosterSpot(BaseModel):
    player_id: str = Field(..., min_length=1)
    slot: str = "BENCH"
    acquired_via: str = "draft"

    model_config = ConfigDict(frozen=True)


class TeamRecord(BaseModel):
    wins: int = Field(default=0, ge=0)
    losses: int = Field(default=0, ge=0)
    ties: int = Field(default=0, ge=0)
    points_for: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)


class Team(BaseModel):
    """Snapshot of a fantasy team's roster, budget and waiver standing."""

    team_id: str = Field(..., min_length=1)
    league_id: str
    name: str
    owner_id: Optional[str] = None
    roster: Tuple[RosterSpot, ...] = ()
    roster_max: int = Field(default=DEFAULT_ROSTER_MAX, ge=1)
    faab_budget: int = Field(default=0, ge=0)
    faab_remaining: int = Field(default=0, ge=0)
    faab_spent: int = Field(default=0, ge=0)
    waiver_priority: int = Field(default=1, ge=1)
    record: TeamRecord = Field(default_factory=TeamRecord)

    model_config = ConfigDict(frozen=True)

    @property
    def roster_size(self) -> int:
        return len(self.roster)

    @property
    def roster_full(self) -> bool:
        return self.roster_size >= self.roster_max

    def has_player(self, player_id: str) -> bool:
        return any(spot.player_id == player_id for spot in self.roster)

    def spot_for(self, player_id: str) -> Optional[RosterSpot]:
        for spot in self.roster:
            if spot.player_id == player_id:
                return spot
        return None
