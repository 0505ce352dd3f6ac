"""Waiver claim model and its status vocabulary."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict


class ClaimKind(str, Enum):
    ADD = "ADD"
    DROP = "DROP"
    ADD_DROP = "ADD_DROP"

    @property
    def adds(self) -> bool:
        return self in (ClaimKind.ADD, ClaimKind.ADD_DROP)

    @property
    def drops(self) -> bool:
        return self in (ClaimKind.DROP, ClaimKind.ADD_DROP)


class ClaimStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self is not ClaimStatus.PENDING


class FailureReason(str, Enum):
    INSUFFICIENT_FAAB = "INSUFFICIENT_FAAB"
    ROSTER_FULL = "ROSTER_FULL"
    PLAYER_UNAVAILABLE = "PLAYER_UNAVAILABLE"
    INVALID_DROP = "INVALID_DROP"
    OUTBID = "OUTBID"
    LOWER_PRIORITY = "LOWER_PRIORITY"
    CANCELLED_BY_USER = "CANCELLED_BY_USER"
    CANCELLED_BY_COMMISSIONER = "CANCELLED_BY_COMMISSIONER"
    EXPIRED = "EXPIRED"
    PROCESSING_ERROR = "PROCESSING_ERROR"


class ValidationCode(str, Enum):
    WAIVERS_NOT_CONFIGURED = "WAIVERS_NOT_CONFIGURED"
    INVALID_KIND = "INVALID_KIND"
    MISSING_ADD_PLAYER = "MISSING_ADD_PLAYER"
    MISSING_DROP_PLAYER = "MISSING_DROP_PLAYER"
    PLAYER_NOT_FREE_AGENT = "PLAYER_NOT_FREE_AGENT"
    PLAYER_NOT_ON_ROSTER = "PLAYER_NOT_ON_ROSTER"
    DUPLICATE_PENDING_CLAIM = "DUPLICATE_PENDING_CLAIM"
    BID_BELOW_MINIMUM = "BID_BELOW_MINIMUM"
    BID_EXCEEDS_BUDGET = "BID_EXCEEDS_BUDGET"


class CancelErrorCode(str, Enum):
    NOT_PENDING = "NOT_PENDING"
    NOT_OWNER = "NOT_OWNER"
    RUN_IN_PROGRESS = "RUN_IN_PROGRESS"


class ProcessedBy(str, Enum):
    SYSTEM = "SYSTEM"
    COMMISSIONER = "COMMISSIONER"
    USER = "USER"


class ClaimResolution(BaseModel):
    """Outcome annotations written when a claim is processed."""

    final_bid_amount: Optional[int] = None
    winning_bid: Optional[int] = None
    highest_bid: Optional[int] = None
    competing_claims: int = Field(default=0, ge=0)
    processing_order: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class Claim(BaseModel):
    """A team's request to add and/or drop a player in one waiver period.

    Instances are frozen. Status changes go through :meth:`succeed`,
    :meth:`fail` and :meth:`cancel`, which return a new claim and refuse to
    touch a claim that has already left ``PENDING``.
    """

    claim_id: str = Field(..., min_length=1)
    league_id: str
    team_id: str
    week: int = Field(..., ge=1, le=18)
    season: int
    kind: ClaimKind
    add_player_id: Optional[str] = None
    drop_player_id: Optional[str] = None
    bid_amount: int = Field(default=0, ge=0)
    priority_at_submission: Optional[int] = Field(default=None, ge=1)
    submitted_at: datetime
    expires_at: datetime
    status: ClaimStatus = ClaimStatus.PENDING
    failure_reason: Optional[FailureReason] = None
    resolution: Optional[ClaimResolution] = None
    notes: str = Field(default="", max_length=200)
    processed_at: Optional[datetime] = None
    processed_by: Optional[ProcessedBy] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_players(self) -> "Claim":
        if self.kind.adds and not self.add_player_id:
            raise ValueError(f"{self.kind.value} claim requires add_player_id")
        if self.kind.drops and not self.drop_player_id:
            raise ValueError(f"{self.kind.value} claim requires drop_player_id")
        return self

    @property
    def is_pending(self) -> bool:
        return self.status is ClaimStatus.PENDING

    def is_expired(self, now: datetime) -> bool:
        return self.is_pending and now > self.expires_at

    def time_remaining(self, now: datetime) -> timedelta:
        if not self.is_pending:
            return timedelta(0)
        return max(timedelta(0), self.expires_at - now)

    def _require_pending(self) -> None:
        if not self.is_pending:
            raise ValueError(f"Claim {self.claim_id} is already {self.status.value}")

    def succeed(self, *, at: datetime, resolution: ClaimResolution) -> "Claim":
        self._require_pending()
        return self.model_copy(
            update={
                "status": ClaimStatus.SUCCESSFUL,
                "failure_reason": None,
                "resolution": resolution,
                "processed_at": at,
                "processed_by": ProcessedBy.SYSTEM,
            }
        )

    def fail(
        self,
        reason: FailureReason,
        *,
        at: datetime,
        resolution: ClaimResolution | None = None,
    ) -> "Claim":
        self._require_pending()
        return self.model_copy(
            update={
                "status": ClaimStatus.FAILED,
                "failure_reason": FailureReason(reason),
                "resolution": resolution if resolution is not None else self.resolution,
                "processed_at": at,
                "processed_by": ProcessedBy.SYSTEM,
            }
        )

    def cancel(self, *, at: datetime, by_commissioner: bool = False) -> "Claim":
        self._require_pending()
        return self.model_copy(
            update={
                "status": ClaimStatus.CANCELLED,
                "failure_reason": (
                    FailureReason.CANCELLED_BY_COMMISSIONER if by_commissioner else FailureReason.CANCELLED_BY_USER
                ),
                "processed_at": at,
                "processed_by": ProcessedBy.COMMISSIONER if by_commissioner else ProcessedBy.USER,
            }
        )
