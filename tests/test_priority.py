from datetime import timedelta

import pytest

from waiverwire.models import ClaimStatus, FailureReason, WaiverMode
from waiverwire.resolution import PriorityResolver, rerank_priorities, standings_order

from tests.helpers import START, make_claim, make_league, make_team, seed, store_claims


@pytest.fixture
def league(store):
    league = make_league(mode=WaiverMode.PRIORITY)
    seed(
        store,
        league,
        make_team("A", priority=1, wins=0, points_for=300.0),
        make_team("B", priority=2, wins=2, points_for=250.0),
        make_team("C", priority=3, wins=2, points_for=410.5, players=["c1"], roster_max=1),
    )
    return league


@pytest.fixture
def resolver(store, roster, clock):
    return PriorityResolver(store, roster, clock=clock)


def test_best_priority_wins_regardless_of_submission_time(store, league, resolver):
    claims = store_claims(
        store,
        make_claim("B", add="P", priority=2, submitted_at=START - timedelta(hours=4)),
        make_claim("A", add="P", priority=1, submitted_at=START),
    )

    results = {c.team_id: c for c in resolver.resolve(league, claims)}

    assert results["A"].status is ClaimStatus.SUCCESSFUL
    assert results["A"].resolution.processing_order == 1
    assert results["B"].failure_reason is FailureReason.PLAYER_UNAVAILABLE
    assert results["B"].resolution.competing_claims == 2
    assert store.team_has_player("A", "P")


def test_failed_execution_leaves_player_open(store, league, resolver):
    claims = store_claims(
        store,
        make_claim("C", add="P", priority=1),
        make_claim("B", add="P", priority=2),
    )

    results = {c.team_id: c for c in resolver.resolve(league, claims)}

    assert results["C"].failure_reason is FailureReason.ROSTER_FULL
    assert results["B"].status is ClaimStatus.SUCCESSFUL


def test_priority_claims_never_spend_faab(store, league, resolver):
    claims = store_claims(store, make_claim("A", add="P", priority=1))
    (result,) = resolver.resolve(league, claims)
    assert result.resolution.final_bid_amount == 0
    assert store.get_team("A").faab_remaining == 100


def test_standings_order_worst_record_first():
    teams = [
        make_team("x", wins=3, points_for=100.0),
        make_team("y", wins=1, points_for=500.0),
        make_team("z", wins=1, points_for=200.0),
        make_team("w", wins=1, points_for=200.0),
    ]
    assert [team.team_id for team in standings_order(teams)] == ["w", "z", "y", "x"]


def test_rerank_assigns_dense_priorities(store, roster, league):
    ranks = rerank_priorities(roster, "L1")

    assert ranks == {"A": 1, "B": 2, "C": 3}
    assert [t.waiver_priority for t in store.list_teams("L1")] == [1, 2, 3]


def test_rerank_after_standings_change(store, roster, league):
    store.save_team(make_team("A", priority=1, wins=5, points_for=600.0))

    ranks = rerank_priorities(roster, "L1")

    assert ranks == {"B": 1, "C": 2, "A": 3}
    assert store.get_team("A").waiver_priority == 3


def test_run_reranks_priorities(store, league, resolver):
    store.save_team(make_team("A", priority=1, wins=5, points_for=600.0))
    claims = store_claims(store, make_claim("A", add="P", priority=1))

    resolver.resolve(league, claims)

    assert store.get_team("A").waiver_priority == 3
    assert store.get_team("B").waiver_priority == 1


def test_no_pending_claims_is_a_noop(store, league, resolver):
    store.save_team(make_team("A", priority=1, wins=5, points_for=600.0))
    assert resolver.resolve(league, []) == []
    assert store.get_team("A").waiver_priority == 1
