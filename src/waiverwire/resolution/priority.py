"""Rolling-priority resolution and standings-based re-ranking."""

from __future__ import annotations

import logging
import sys
from collections import Counter
from typing import Dict, List, Sequence, Set

from waiverwire.models import Claim, ClaimResolution, ClaimStatus, FailureReason, League, Team
from waiverwire.roster import RosterService

from .base import ClaimResolver


logger = logging.getLogger(__name__)


def standings_order(teams: Sequence[Team]) -> List[Team]:
    """Worst record first: fewest wins, then fewest points, then team id."""

    return sorted(teams, key=lambda team: (team.record.wins, team.record.points_for, team.team_id))


def rerank_priorities(roster: RosterService, league_id: str) -> Dict[str, int]:
    """Assign waiver priorities 1..N by reverse standings and return them."""

    ranks: Dict[str, int] = {}
    for rank, team in enumerate(standings_order(roster.list_teams(league_id)), start=1):
        if team.waiver_priority != rank:
            roster.set_priority(team.team_id, rank)
        ranks[team.team_id] = rank
    logger.info("Updated waiver priorities for league %s (%d teams)", league_id, len(ranks))
    return ranks


class PriorityResolver(ClaimResolver):
    """Processes claims by the priority each team held when it submitted.

    The first successful claim on a player takes it off the board; a failed
    execution leaves the player open for lower-priority claims.
    """

    def resolve(self, league: League, claims: Sequence[Claim]) -> List[Claim]:
        pending = sorted(
            (claim for claim in claims if claim.is_pending),
            key=lambda claim: (
                claim.priority_at_submission or sys.maxsize,
                claim.submitted_at,
                claim.claim_id,
            ),
        )
        if not pending:
            return []
        order = self._counter()
        demand = Counter(claim.add_player_id for claim in pending if claim.kind.adds)
        claimed: Set[str] = set()
        results: List[Claim] = []

        for claim in pending:
            competing = demand[claim.add_player_id] if claim.kind.adds else 0
            resolution = ClaimResolution(final_bid_amount=0, competing_claims=competing, processing_order=next(order))
            if claim.kind.adds and claim.add_player_id in claimed:
                results.append(self._reject(claim, FailureReason.PLAYER_UNAVAILABLE, resolution))
                continue
            outcome = self._execute(claim, league, resolution)
            if outcome.status is ClaimStatus.SUCCESSFUL and claim.add_player_id:
                claimed.add(claim.add_player_id)
            results.append(outcome)

        self._heartbeat()
        rerank_priorities(self._roster, league.league_id)
        return results
