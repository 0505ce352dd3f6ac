"""All-or-nothing application of a winning claim to a team."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from waiverwire.errors import ClaimExecutionError
from waiverwire.models import Claim, FailureReason, League, Team
from waiverwire.roster import RosterService


logger = logging.getLogger(__name__)

Compensation = Callable[[], None]


def roster_limit(team: Team, league: League) -> int:
    """Effective roster cap: the team's own limit within the league's slot count."""

    return min(team.roster_max, league.roster_settings.max_size)


class TransactionExecutor:
    """Applies a claim's roster moves and FAAB deduction.

    Every step that succeeds pushes a compensating action; when a later
    step fails the compensations run in reverse order and the original
    error is re-raised, so the team ends up exactly as it was. The optional
    ``commit`` callback runs last inside the same guard, so a claim whose
    outcome cannot be recorded is undone too. ``RosterUnavailableError``
    propagates untouched.
    """

    def __init__(self, roster: RosterService):
        self._roster = roster

    def execute(self, claim: Claim, league: League, *, commit: Optional[Callable[[], None]] = None) -> Team:
        drop_id = claim.drop_player_id if claim.kind.drops else None
        add_id = claim.add_player_id if claim.kind.adds else None
        undo: List[Compensation] = []
        try:
            if drop_id:
                self._check_drop(claim.team_id, drop_id)
            if add_id:
                self._check_free_agent(add_id, league)
            if drop_id:
                self._drop(claim.team_id, drop_id, undo)
            if add_id:
                self._add(claim.team_id, add_id, league, undo)
            self._charge(claim, league, undo)
            if commit is not None:
                commit()
        except Exception:
            self._rollback(claim, undo)
            raise
        return self._roster.get_team(claim.team_id)

    def _check_drop(self, team_id: str, player_id: str) -> None:
        if not self._roster.has_player(team_id, player_id):
            raise ClaimExecutionError(
                FailureReason.INVALID_DROP,
                f"Player {player_id} is no longer on team {team_id}",
            )

    def _check_free_agent(self, player_id: str, league: League) -> None:
        if not self._roster.is_free_agent(player_id, league.league_id):
            raise ClaimExecutionError(
                FailureReason.PLAYER_UNAVAILABLE,
                f"Player {player_id} is no longer a free agent",
            )

    def _drop(self, team_id: str, player_id: str, undo: List[Compensation]) -> None:
        spot = self._roster.drop_player(team_id, player_id)
        undo.append(
            lambda: self._roster.add_player(
                team_id,
                spot.player_id,
                slot=spot.slot,
                acquired_via=spot.acquired_via,
            )
        )

    def _add(self, team_id: str, player_id: str, league: League, undo: List[Compensation]) -> None:
        team = self._roster.get_team(team_id)
        limit = roster_limit(team, league)
        if team.roster_size >= limit:
            raise ClaimExecutionError(
                FailureReason.ROSTER_FULL,
                f"Team {team_id} roster is full ({team.roster_size}/{limit})",
            )
        self._roster.add_player(team_id, player_id, slot="BENCH", acquired_via="waiver")

        def _undo_add() -> None:
            self._roster.drop_player(team_id, player_id)

        undo.append(_undo_add)

    def _charge(self, claim: Claim, league: League, undo: List[Compensation]) -> None:
        settings = league.waiver_settings
        if settings is None or not settings.is_faab or claim.bid_amount == 0:
            return
        # Re-read so spending earlier in the same run is visible.
        team = self._roster.get_team(claim.team_id)
        if claim.bid_amount > team.faab_remaining:
            raise ClaimExecutionError(
                FailureReason.INSUFFICIENT_FAAB,
                f"Bid ${claim.bid_amount} exceeds remaining ${team.faab_remaining}",
            )
        self._roster.deduct_budget(claim.team_id, claim.bid_amount)
        undo.append(lambda: self._roster.refund_budget(claim.team_id, claim.bid_amount))

    def _rollback(self, claim: Claim, undo: List[Compensation]) -> None:
        if not undo:
            return
        logger.info("Rolling back %d step(s) for claim %s", len(undo), claim.claim_id)
        for action in reversed(undo):
            try:
                action()
            except Exception:
                logger.exception(
                    "Compensation failed for claim %s (team=%s add=%s drop=%s)",
                    claim.claim_id,
                    claim.team_id,
                    claim.add_player_id,
                    claim.drop_player_id,
                )
