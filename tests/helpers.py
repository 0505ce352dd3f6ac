from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable
from uuid import uuid4

from waiverwire.models import (
    Claim,
    ClaimKind,
    League,
    LeagueStatus,
    RosterSpot,
    Team,
    TeamRecord,
    WaiverMode,
    WaiverSettings,
)
from waiverwire.persistence import WaiverStore


# A Monday; the default Wednesday 03:00 America/New_York run is 2025-09-17 07:00 UTC.
START = datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc)
FIRST_RUN = datetime(2025, 9, 17, 7, 0, tzinfo=timezone.utc)


def make_league(
    league_id: str = "L1",
    *,
    mode: WaiverMode = WaiverMode.FAAB,
    min_bid: int = 0,
    budget: int = 100,
    commissioner_team_id: str | None = None,
    waivers: bool = True,
    status: LeagueStatus = LeagueStatus.ACTIVE,
) -> League:
    return League(
        league_id=league_id,
        name=f"League {league_id}",
        season=2025,
        current_week=3,
        status=status,
        commissioner_team_id=commissioner_team_id,
        waiver_settings=WaiverSettings(mode=mode, budget=budget, min_bid=min_bid) if waivers else None,
    )


def make_team(
    team_id: str,
    league_id: str = "L1",
    *,
    players: Iterable[str | RosterSpot] = (),
    budget: int = 100,
    remaining: int | None = None,
    priority: int = 1,
    wins: int = 0,
    points_for: float = 0.0,
    roster_max: int = 16,
) -> Team:
    spots = tuple(p if isinstance(p, RosterSpot) else RosterSpot(player_id=p) for p in players)
    return Team(
        team_id=team_id,
        league_id=league_id,
        name=f"Team {team_id}",
        roster=spots,
        roster_max=roster_max,
        faab_budget=budget,
        faab_remaining=budget if remaining is None else remaining,
        waiver_priority=priority,
        record=TeamRecord(wins=wins, points_for=points_for),
    )


def seed(store: WaiverStore, league: League, *teams: Team) -> None:
    store.save_league(league)
    for team in teams:
        store.save_team(team)


def make_claim(
    team_id: str,
    *,
    league_id: str = "L1",
    kind: ClaimKind = ClaimKind.ADD,
    add: str | None = None,
    drop: str | None = None,
    bid: int = 0,
    priority: int = 1,
    submitted_at: datetime = START,
    claim_id: str | None = None,
) -> Claim:
    return Claim(
        claim_id=claim_id or uuid4().hex,
        league_id=league_id,
        team_id=team_id,
        week=3,
        season=2025,
        kind=kind,
        add_player_id=add,
        drop_player_id=drop,
        bid_amount=bid,
        priority_at_submission=priority,
        submitted_at=submitted_at,
        expires_at=FIRST_RUN,
    )


def store_claims(store: WaiverStore, *claims: Claim) -> list[Claim]:
    for claim in claims:
        store.insert_claim(claim)
    return list(claims)
