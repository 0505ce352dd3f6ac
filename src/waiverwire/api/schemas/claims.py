from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from waiverwire.claims import ClaimRequest
from waiverwire.models import Claim, ClaimResolution


class ClaimSubmission(ClaimRequest):
    team_id: str = Field(..., min_length=1)

    def to_request(self) -> ClaimRequest:
        return ClaimRequest.model_validate(self.model_dump(exclude={"team_id"}))


class CancelClaimRequest(BaseModel):
    team_id: str = Field(..., min_length=1)


class ClaimResponse(BaseModel):
    claim_id: str
    league_id: str
    team_id: str
    week: int
    season: int
    kind: str
    add_player_id: Optional[str] = None
    drop_player_id: Optional[str] = None
    bid_amount: int
    priority_at_submission: Optional[int] = None
    status: str
    failure_reason: Optional[str] = None
    resolution: Optional[ClaimResolution] = None
    notes: str = ""
    submitted_at: datetime
    expires_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    time_remaining_seconds: float = 0.0

    @classmethod
    def from_claim(cls, claim: Claim, now: datetime) -> "ClaimResponse":
        return cls(
            claim_id=claim.claim_id,
            league_id=claim.league_id,
            team_id=claim.team_id,
            week=claim.week,
            season=claim.season,
            kind=claim.kind.value,
            add_player_id=claim.add_player_id,
            drop_player_id=claim.drop_player_id,
            bid_amount=claim.bid_amount,
            priority_at_submission=claim.priority_at_submission,
            status=claim.status.value,
            failure_reason=claim.failure_reason.value if claim.failure_reason else None,
            resolution=claim.resolution,
            notes=claim.notes,
            submitted_at=claim.submitted_at,
            expires_at=claim.expires_at,
            processed_at=claim.processed_at,
            processed_by=claim.processed_by.value if claim.processed_by else None,
            time_remaining_seconds=claim.time_remaining(now).total_seconds(),
        )


class ClaimListResponse(BaseModel):
    claims: List[ClaimResponse]
    total: int
