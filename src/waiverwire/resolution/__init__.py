"""Claim resolution strategies and the transaction executor."""

from __future__ import annotations

from waiverwire.clock import Clock
from waiverwire.models import League
from waiverwire.persistence import WaiverStore
from waiverwire.roster import RosterService

from .auction import AuctionResolver
from .base import ClaimResolver, Heartbeat
from .executor import TransactionExecutor, roster_limit
from .priority import PriorityResolver, rerank_priorities, standings_order


def resolver_for(
    league: League,
    store: WaiverStore,
    roster: RosterService,
    *,
    clock: Clock | None = None,
    heartbeat: Heartbeat | None = None,
) -> ClaimResolver:
    """Pick the resolver matching the league's waiver mode."""

    if league.waiver_settings is None:
        raise ValueError(f"League {league.league_id} has no waiver settings")
    if league.waiver_settings.is_faab:
        return AuctionResolver(store, roster, clock=clock, heartbeat=heartbeat)
    return PriorityResolver(store, roster, clock=clock, heartbeat=heartbeat)


__all__ = [
    "AuctionResolver",
    "ClaimResolver",
    "PriorityResolver",
    "TransactionExecutor",
    "roster_limit",
    "rerank_priorities",
    "resolver_for",
    "standings_order",
]
