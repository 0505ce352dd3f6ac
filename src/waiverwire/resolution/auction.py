"""FAAB blind-auction resolution."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Sequence

from waiverwire.models import Claim, ClaimResolution, FailureReason, League

from .base import ClaimResolver


logger = logging.getLogger(__name__)


def _bid_order(claim: Claim) -> tuple:
    return (-claim.bid_amount, claim.submitted_at, claim.claim_id)


def _group_order(group: List[Claim]) -> tuple:
    earliest = min(claim.submitted_at for claim in group)
    return (-group[0].bid_amount, earliest, group[0].add_player_id or "")


class AuctionResolver(ClaimResolver):
    """Highest bid wins each contested player; ties go to the earlier claim.

    Pure drops run first. Groups are then processed from the richest bid
    down so an overcommitted team keeps its most valuable wins. Losing bids
    are recorded before the winner executes, and a winner that cannot be
    executed does not hand the player to the runner-up.
    """

    def resolve(self, league: League, claims: Sequence[Claim]) -> List[Claim]:
        pending = [claim for claim in claims if claim.is_pending]
        if not pending:
            return []
        order = self._counter()
        results: List[Claim] = []

        drops = sorted(
            (claim for claim in pending if not claim.kind.adds),
            key=lambda claim: (claim.submitted_at, claim.claim_id),
        )
        for claim in drops:
            resolution = ClaimResolution(final_bid_amount=0, competing_claims=0, processing_order=next(order))
            results.append(self._execute(claim, league, resolution))

        groups: Dict[str, List[Claim]] = defaultdict(list)
        for claim in pending:
            if claim.kind.adds and claim.add_player_id:
                groups[claim.add_player_id].append(claim)
        ranked = [sorted(group, key=_bid_order) for group in groups.values()]
        ranked.sort(key=_group_order)

        for group in ranked:
            winner, losers = group[0], group[1:]
            winning_bid = winner.bid_amount
            competing = len(group)
            for loser in losers:
                resolution = ClaimResolution(
                    winning_bid=winning_bid,
                    highest_bid=winning_bid,
                    competing_claims=competing,
                    processing_order=next(order),
                )
                results.append(self._reject(loser, FailureReason.OUTBID, resolution))
            resolution = ClaimResolution(
                final_bid_amount=winning_bid,
                winning_bid=winning_bid,
                highest_bid=winning_bid,
                competing_claims=competing,
                processing_order=next(order),
            )
            results.append(self._execute(winner, league, resolution))

        logger.info(
            "Auction for league %s resolved %d claim(s) across %d player(s)",
            league.league_id,
            len(results),
            len(ranked),
        )
        return results
