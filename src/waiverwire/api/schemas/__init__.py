"""Pydantic models for API I/O."""

from .claims import CancelClaimRequest, ClaimListResponse, ClaimResponse, ClaimSubmission
from .runs import (
    AvailablePlayer,
    AvailablePlayersResponse,
    BudgetResponse,
    ErrorResponse,
    LeagueReportResponse,
    ProcessingTimeResponse,
)

__all__ = [
    "AvailablePlayer",
    "AvailablePlayersResponse",
    "BudgetResponse",
    "CancelClaimRequest",
    "ClaimListResponse",
    "ClaimResponse",
    "ClaimSubmission",
    "ErrorResponse",
    "LeagueReportResponse",
    "ProcessingTimeResponse",
]
