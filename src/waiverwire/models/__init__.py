"""Canonical waiver, team and league models shared across the engine."""

from .claim import (
    CancelErrorCode,
    Claim,
    ClaimKind,
    ClaimResolution,
    ClaimStatus,
    FailureReason,
    ProcessedBy,
    ValidationCode,
)
from .league import League, LeagueStatus, RosterSettings, WaiverMode, WaiverSettings
from .team import RosterSpot, Team, TeamRecord

__all__ = [
    "CancelErrorCode",
    "Claim",
    "ClaimKind",
    "ClaimResolution",
    "ClaimStatus",
    "FailureReason",
    "League",
    "LeagueStatus",
    "ProcessedBy",
    "RosterSettings",
    "RosterSpot",
    "Team",
    "TeamRecord",
    "ValidationCode",
    "WaiverMode",
    "WaiverSettings",
]
