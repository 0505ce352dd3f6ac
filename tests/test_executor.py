import pytest

from waiverwire.errors import ClaimExecutionError, RosterUnavailableError
from waiverwire.models import ClaimKind, FailureReason, RosterSettings, RosterSpot, WaiverMode
from waiverwire.resolution import TransactionExecutor, roster_limit
from waiverwire.roster import StoreRosterService

from tests.helpers import make_claim, make_league, make_team, seed


class ExplodingBudgetRoster(StoreRosterService):
    def __init__(self, store, error: Exception):
        super().__init__(store)
        self.error = error

    def deduct_budget(self, team_id: str, amount: int) -> None:
        raise self.error


@pytest.fixture
def league(store):
    league = make_league()
    seed(
        store,
        league,
        make_team("T1", players=[RosterSpot(player_id="p1", slot="RB", acquired_via="draft"), "p2"], budget=50),
        make_team("T2", players=["p3"]),
        make_team("FULL", players=["f1", "f2"], roster_max=2),
    )
    return league


def _reason(excinfo) -> FailureReason:
    return excinfo.value.reason


def test_add_puts_player_on_bench_and_charges_bid(store, roster, league):
    team = TransactionExecutor(roster).execute(make_claim("T1", add="p9", bid=15), league)

    assert team.spot_for("p9").slot == "BENCH"
    assert team.spot_for("p9").acquired_via == "waiver"
    assert team.faab_remaining == 35
    assert team.faab_spent == 15


def test_priority_league_never_charges(store, roster):
    league = make_league("L2", mode=WaiverMode.PRIORITY)
    seed(store, league, make_team("P1", league_id="L2", budget=0))
    team = TransactionExecutor(roster).execute(make_claim("P1", league_id="L2", add="p9", bid=5), league)
    assert team.has_player("p9")
    assert team.faab_spent == 0


def test_add_rejects_rostered_player(roster, league):
    with pytest.raises(ClaimExecutionError) as excinfo:
        TransactionExecutor(roster).execute(make_claim("T1", add="p3"), league)
    assert _reason(excinfo) is FailureReason.PLAYER_UNAVAILABLE


def test_add_rejects_full_roster(store, roster, league):
    with pytest.raises(ClaimExecutionError) as excinfo:
        TransactionExecutor(roster).execute(make_claim("FULL", add="p9", bid=5), league)
    assert _reason(excinfo) is FailureReason.ROSTER_FULL
    assert store.get_team("FULL").faab_remaining == 100
    assert not store.is_rostered("L1", "p9")


def test_drop_requires_player_on_roster(roster, league):
    with pytest.raises(ClaimExecutionError) as excinfo:
        TransactionExecutor(roster).execute(make_claim("T1", kind=ClaimKind.DROP, drop="p3"), league)
    assert _reason(excinfo) is FailureReason.INVALID_DROP


def test_drop_removes_player(roster, league):
    team = TransactionExecutor(roster).execute(make_claim("T1", kind=ClaimKind.DROP, drop="p2"), league)
    assert not team.has_player("p2")
    assert team.faab_remaining == 50


def test_add_drop_frees_a_slot_first(roster, league):
    claim = make_claim("FULL", kind=ClaimKind.ADD_DROP, add="p9", drop="f1", bid=10)
    team = TransactionExecutor(roster).execute(claim, league)
    assert team.has_player("p9")
    assert not team.has_player("f1")
    assert team.roster_size == 2


def test_budget_shortfall_rolls_back_roster(store, roster, league):
    store.deduct_budget("T1", 45)
    claim = make_claim("T1", kind=ClaimKind.ADD_DROP, add="p9", drop="p1", bid=10)

    with pytest.raises(ClaimExecutionError) as excinfo:
        TransactionExecutor(roster).execute(claim, league)

    assert _reason(excinfo) is FailureReason.INSUFFICIENT_FAAB
    team = store.get_team("T1")
    assert team.spot_for("p1") == RosterSpot(player_id="p1", slot="RB", acquired_via="draft")
    assert not team.has_player("p9")
    assert team.faab_remaining == 5
    assert not store.is_rostered("L1", "p9")


def test_unexpected_error_rolls_back_and_propagates(store, league):
    roster = ExplodingBudgetRoster(store, RuntimeError("ledger offline"))
    claim = make_claim("T1", kind=ClaimKind.ADD_DROP, add="p9", drop="p2", bid=5)

    with pytest.raises(RuntimeError):
        TransactionExecutor(roster).execute(claim, league)

    team = store.get_team("T1")
    assert team.has_player("p2")
    assert not team.has_player("p9")


def test_roster_unavailable_is_not_a_claim_failure(store, league):
    roster = ExplodingBudgetRoster(store, RosterUnavailableError("database is locked"))
    with pytest.raises(RosterUnavailableError):
        TransactionExecutor(roster).execute(make_claim("T1", add="p9", bid=5), league)
    assert not store.team_has_player("T1", "p9")


def test_league_slot_count_caps_roster(store, roster):
    tight = RosterSettings(qb=1, rb=1, wr=1, te=0, flex=0, dst=0, k=0, bench=0, ir=0)
    league = make_league().model_copy(update={"roster_settings": tight})
    team = make_team("T1", players=["a", "b", "c"], roster_max=16)
    seed(store, league, team)
    assert roster_limit(team, league) == 3

    with pytest.raises(ClaimExecutionError) as excinfo:
        TransactionExecutor(roster).execute(make_claim("T1", add="p9", bid=5), league)

    assert _reason(excinfo) is FailureReason.ROSTER_FULL
    assert "3/3" in str(excinfo.value)
    assert not store.team_has_player("T1", "p9")
    assert store.get_team("T1").faab_remaining == 100


def test_failed_commit_undoes_moves_and_refunds_bid(store, roster, league):
    def commit():
        raise RuntimeError("could not record claim")

    claim = make_claim("T1", kind=ClaimKind.ADD_DROP, add="p9", drop="p2", bid=20)
    with pytest.raises(RuntimeError):
        TransactionExecutor(roster).execute(claim, league, commit=commit)

    team = store.get_team("T1")
    assert team.has_player("p2")
    assert not team.has_player("p9")
    assert team.faab_remaining == 50
    assert team.faab_spent == 0
    assert not store.is_rostered("L1", "p9")


def test_commit_runs_after_charge(store, roster, league):
    seen = []
    claim = make_claim("T1", add="p9", bid=10)
    TransactionExecutor(roster).execute(claim, league, commit=lambda: seen.append(store.get_team("T1").faab_spent))
    assert seen == [10]
