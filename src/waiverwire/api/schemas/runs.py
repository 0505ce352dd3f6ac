from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from waiverwire.reporting import RunSummary

from .claims import ClaimResponse


class ErrorResponse(BaseModel):
    code: str
    message: str


class ProcessingTimeResponse(BaseModel):
    league_id: str
    next_processing: datetime
    time_remaining_seconds: float
    mode: str
    timezone: str


class LeagueReportResponse(BaseModel):
    league_id: str
    week: Optional[int] = None
    claims: List[ClaimResponse]
    summary: RunSummary


class BudgetResponse(BaseModel):
    team_id: str
    total: int
    remaining: int
    spent: int
    pending_bids: int
    available: int


class AvailablePlayer(BaseModel):
    player_id: str
    pending_claims: int


class AvailablePlayersResponse(BaseModel):
    league_id: str
    players: List[AvailablePlayer]
    total: int
