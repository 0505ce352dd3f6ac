"""Exceptions raised by the waiver engine."""

from __future__ import annotations

from waiverwire.models.claim import CancelErrorCode, FailureReason, ValidationCode


class WaiverError(Exception):
    """Base class for waiver engine errors."""


class ClaimValidationError(WaiverError):
    """A submitted claim was rejected; nothing was persisted."""

    def __init__(self, code: ValidationCode, message: str | None = None):
        self.code = ValidationCode(code)
        self.message = message or self.code.value.replace("_", " ").lower()
        super().__init__(self.message)


class ClaimExecutionError(WaiverError):
    """Executing a winning claim failed; the reason is recorded on the claim."""

    def __init__(self, reason: FailureReason, message: str | None = None):
        self.reason = FailureReason(reason)
        self.message = message or self.reason.value
        super().__init__(self.message)


class ClaimCancelError(WaiverError):
    def __init__(self, code: CancelErrorCode, message: str | None = None):
        self.code = CancelErrorCode(code)
        self.message = message or self.code.value.replace("_", " ").lower()
        super().__init__(self.message)


class RosterUnavailableError(WaiverError):
    """The roster collaborator cannot be reached; aborts the league run."""


class LeaseLostError(WaiverError):
    """The league lease passed to another run; the current run must stop."""


class TeamNotFoundError(WaiverError, KeyError):
    def __init__(self, team_id: str):
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


class LeagueNotFoundError(WaiverError, KeyError):
    def __init__(self, league_id: str):
        self.league_id = league_id
        super().__init__(f"League {league_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


class ClaimNotFoundError(WaiverError, KeyError):
    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Claim {claim_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


__all__ = [
    "WaiverError",
    "ClaimValidationError",
    "ClaimExecutionError",
    "ClaimCancelError",
    "RosterUnavailableError",
    "LeaseLostError",
    "TeamNotFoundError",
    "LeagueNotFoundError",
    "ClaimNotFoundError",
]
