"""Submission-time checks for new waiver claims."""

from __future__ import annotations

import logging
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field

from waiverwire.clock import Clock, SystemClock
from waiverwire.errors import ClaimValidationError, LeagueNotFoundError
from waiverwire.models import Claim, ClaimKind, ClaimStatus, League, Team, ValidationCode, WaiverSettings
from waiverwire.persistence import WaiverStore
from waiverwire.roster import RosterService


logger = logging.getLogger(__name__)


class ClaimRequest(BaseModel):
    """Raw claim submission; ``kind`` stays a string so bad kinds reach the validator."""

    kind: str
    add_player_id: Optional[str] = None
    drop_player_id: Optional[str] = None
    bid_amount: int = Field(default=0, ge=0)
    notes: str = Field(default="", max_length=200)


class ClaimValidator:
    """Validates a claim request and persists it as PENDING.

    Checks run in a fixed order and the first failure wins:

    1. waivers configured for the league, known claim kind
    2. add target present and a free agent
    3. drop target present and on the submitting roster
    4. FAAB bid within ``[min_bid, faab_remaining]``
    5. no other pending claim by the team for the same add target

    The budget check uses the team's current remaining FAAB only; pending
    claims may overcommit and are settled at execution time.
    """

    def __init__(self, store: WaiverStore, roster: RosterService, *, clock: Clock | None = None):
        self._store = store
        self._roster = roster
        self._clock = clock or SystemClock()

    def submit(self, team_id: str, request: ClaimRequest) -> Claim:
        team = self._roster.get_team(team_id)
        league = self._store.get_league(team.league_id)
        if league is None:
            raise LeagueNotFoundError(team.league_id)

        settings, kind = self._check_rules(league, request)
        self._check_add(league, kind, request)
        self._check_drop(team, kind, request)
        bid = self._check_bid(settings, team, kind, request)
        self._check_duplicate(team, kind, request)

        now = self._clock.now()
        claim = Claim(
            claim_id=uuid4().hex,
            league_id=league.league_id,
            team_id=team.team_id,
            week=league.current_week,
            season=league.season,
            kind=kind,
            add_player_id=request.add_player_id if kind.adds else None,
            drop_player_id=request.drop_player_id if kind.drops else None,
            bid_amount=bid,
            priority_at_submission=team.waiver_priority,
            submitted_at=now,
            expires_at=settings.next_processing_time(now),
            status=ClaimStatus.PENDING,
            notes=request.notes,
        )
        self._store.insert_claim(claim)
        logger.info(
            "Accepted %s claim %s for team %s (add=%s drop=%s bid=%d)",
            kind.value,
            claim.claim_id,
            team.team_id,
            claim.add_player_id,
            claim.drop_player_id,
            claim.bid_amount,
        )
        return claim

    def _check_rules(self, league: League, request: ClaimRequest) -> Tuple[WaiverSettings, ClaimKind]:
        settings = league.waiver_settings
        if settings is None:
            raise ClaimValidationError(
                ValidationCode.WAIVERS_NOT_CONFIGURED,
                "Waivers not configured for this league",
            )
        try:
            return settings, ClaimKind(request.kind.upper())
        except ValueError:
            raise ClaimValidationError(
                ValidationCode.INVALID_KIND,
                f"Invalid claim type {request.kind!r}",
            ) from None

    def _check_add(self, league: League, kind: ClaimKind, request: ClaimRequest) -> None:
        if not kind.adds:
            return
        if not request.add_player_id:
            raise ClaimValidationError(ValidationCode.MISSING_ADD_PLAYER, "Add player required")
        if not self._roster.is_free_agent(request.add_player_id, league.league_id):
            raise ClaimValidationError(ValidationCode.PLAYER_NOT_FREE_AGENT, "Player is not available")

    def _check_drop(self, team: Team, kind: ClaimKind, request: ClaimRequest) -> None:
        if not kind.drops:
            return
        if not request.drop_player_id:
            raise ClaimValidationError(ValidationCode.MISSING_DROP_PLAYER, "Drop player required")
        if not self._roster.has_player(team.team_id, request.drop_player_id):
            raise ClaimValidationError(ValidationCode.PLAYER_NOT_ON_ROSTER, "Drop player not found on roster")

    def _check_bid(self, settings: WaiverSettings, team: Team, kind: ClaimKind, request: ClaimRequest) -> int:
        # Bids only mean something when a FAAB league claim adds a player.
        if not settings.is_faab or not kind.adds:
            return 0
        if request.bid_amount < settings.min_bid:
            raise ClaimValidationError(
                ValidationCode.BID_BELOW_MINIMUM,
                f"Minimum bid is ${settings.min_bid}",
            )
        if request.bid_amount > team.faab_remaining:
            raise ClaimValidationError(ValidationCode.BID_EXCEEDS_BUDGET, "Insufficient FAAB budget")
        return request.bid_amount

    def _check_duplicate(self, team: Team, kind: ClaimKind, request: ClaimRequest) -> None:
        if not kind.adds or not request.add_player_id:
            return
        if self._store.find_pending_claim(team.team_id, request.add_player_id) is not None:
            raise ClaimValidationError(
                ValidationCode.DUPLICATE_PENDING_CLAIM,
                "You already have a pending claim for this player",
            )
