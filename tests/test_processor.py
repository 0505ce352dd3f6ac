from datetime import datetime, timedelta, timezone

import pytest

from waiverwire.claims import ClaimRequest
from waiverwire.errors import (
    ClaimCancelError,
    ClaimNotFoundError,
    LeagueNotFoundError,
    LeaseLostError,
    RosterUnavailableError,
    WaiverError,
)
from waiverwire.models import CancelErrorCode, ClaimStatus, FailureReason, ProcessedBy, WaiverMode
from waiverwire.processor import TRIGGER_SCHEDULED, WaiverProcessor
from waiverwire.reporting import InMemoryEventSink, ResultReporter
from waiverwire.roster import StoreRosterService
from waiverwire.scheduler import Scheduler

from tests.helpers import FIRST_RUN, START, make_claim, make_league, make_team, seed, store_claims


class UnreachableRoster(StoreRosterService):
    def is_free_agent(self, player_id, league_id):
        raise RosterUnavailableError("roster service timed out")


class StallingRoster(StoreRosterService):
    """Stalls past the lease TTL on its first add while another run starts."""

    def __init__(self, store, clock, stall):
        super().__init__(store)
        self.clock = clock
        self.stall = stall
        self.processor = None
        self.stalled = False

    def add_player(self, team_id, player_id, *, slot="BENCH", acquired_via="waiver"):
        super().add_player(team_id, player_id, slot=slot, acquired_via=acquired_via)
        if not self.stalled:
            self.stalled = True
            self.clock.advance(self.stall)
            self.processor.trigger_resolution("L1")


@pytest.fixture
def sink():
    return InMemoryEventSink()


@pytest.fixture
def processor(store, clock, sink):
    seed(
        store,
        make_league(commissioner_team_id="C"),
        make_team("A", players=["a1"]),
        make_team("B", priority=2),
        make_team("C", priority=3),
    )
    return WaiverProcessor(store, reporter=ResultReporter(sink), clock=clock, max_workers=2)


def _add(player, bid=0):
    return ClaimRequest(kind="ADD", add_player_id=player, bid_amount=bid)


def _hold_lease(store, clock, league_id="L1"):
    assert store.acquire_lease(league_id, "other-run", now=clock.now(), ttl=timedelta(hours=1))


def test_submit_sets_expiry_to_next_run(processor):
    claim = processor.submit_claim("A", _add("P", 10))
    assert claim.status is ClaimStatus.PENDING
    assert claim.expires_at == FIRST_RUN
    assert claim.priority_at_submission == 1


def test_trigger_resolution_runs_and_reports(processor, store, sink):
    winner = processor.submit_claim("A", _add("P", 10))
    loser = processor.submit_claim("B", _add("P", 5))

    summary = processor.trigger_resolution("L1")

    assert (summary.processed, summary.successful, summary.failed) == (2, 1, 1)
    assert store.get_claim(winner.claim_id).status is ClaimStatus.SUCCESSFUL
    assert store.get_claim(loser.claim_id).failure_reason is FailureReason.OUTBID
    assert store.get_team("A").faab_remaining == 90
    (run,) = store.list_runs()
    assert run.state == "completed"
    assert run.summary["successful"] == 1
    assert store.get_lease("L1") is None
    assert len(sink.of_type("claim_resolved")) == 2
    assert len(sink.of_type("waiver_run_completed")) == 1


def test_rerun_is_a_noop(processor, store, sink):
    processor.submit_claim("A", _add("P", 10))
    processor.trigger_resolution("L1")
    sent = len(sink.events)

    summary = processor.trigger_resolution("L1")

    assert summary.processed == 0
    assert store.get_team("A").faab_remaining == 90
    assert len(sink.events) == sent
    assert store.count_runs() == 2


def test_held_lease_skips_the_run(processor, store, clock):
    claim = processor.submit_claim("A", _add("P", 10))
    _hold_lease(store, clock)

    assert processor.trigger_resolution("L1") is None
    assert store.get_claim(claim.claim_id).is_pending
    assert store.count_runs() == 0


def test_expired_lease_is_taken_over(processor, store, clock):
    processor.submit_claim("A", _add("P", 10))
    store.acquire_lease("L1", "crashed-run", now=clock.now(), ttl=timedelta(minutes=15))
    clock.advance(timedelta(minutes=16))

    summary = processor.trigger_resolution("L1")

    assert summary.successful == 1


def test_unknown_or_unconfigured_league(processor, store):
    with pytest.raises(LeagueNotFoundError):
        processor.trigger_resolution("missing")
    store.save_league(make_league("L9", waivers=False))
    with pytest.raises(WaiverError):
        processor.trigger_resolution("L9")


def test_roster_outage_fails_the_run_and_releases_lease(store, clock, sink):
    seed(store, make_league(), make_team("A"))
    (claim,) = store_claims(store, make_claim("A", add="P", bid=5))
    processor = WaiverProcessor(
        store,
        roster=UnreachableRoster(store),
        reporter=ResultReporter(sink),
        clock=clock,
    )

    with pytest.raises(RosterUnavailableError):
        processor.trigger_resolution("L1")

    (run,) = store.list_runs()
    assert run.state == "failed"
    assert "timed out" in run.message
    assert store.get_lease("L1") is None
    assert store.get_claim(claim.claim_id).is_pending
    assert not processor.is_processing
    assert sink.events == []


def test_process_all_leagues_collects_outcomes(processor, store, clock):
    seed(
        store,
        make_league("L2", mode=WaiverMode.PRIORITY),
        make_team("X", "L2", priority=1),
        make_team("Y", "L2", priority=2),
    )
    seed(store, make_league("L3"), make_team("Z", "L3"))
    store.save_league(make_league("L4", waivers=False))
    processor.submit_claim("A", _add("P", 3))
    processor.submit_claim("X", _add("Q"))
    processor.submit_claim("Y", _add("Q"))
    _hold_lease(store, clock, "L3")

    batch = processor.process_all_leagues()

    assert batch.total_leagues == 3
    assert batch.processed_leagues == 2
    assert batch.skipped_leagues == ["L3"]
    assert (batch.total_claims, batch.successful_claims, batch.failed_claims) == (3, 2, 1)
    assert batch.errors == []
    assert batch.to_dict()["finished_at"] == START.isoformat()


def test_priority_updates(processor, store, clock):
    assert processor.update_league_priorities("L1") == {}
    seed(
        store,
        make_league("L2", mode=WaiverMode.PRIORITY),
        make_team("X", "L2", priority=1, wins=4),
        make_team("Y", "L2", priority=2, wins=1),
    )

    assert processor.update_all_priorities() == {"L2": {"Y": 1, "X": 2}}
    _hold_lease(store, clock, "L2")
    assert processor.update_league_priorities("L2") is None


def test_expire_stale_claims(processor, store, clock):
    claim = processor.submit_claim("A", _add("P", 10))
    clock.set(FIRST_RUN + timedelta(minutes=1))

    assert processor.expire_stale_claims() == 1

    expired = store.get_claim(claim.claim_id)
    assert expired.status is ClaimStatus.FAILED
    assert expired.failure_reason is FailureReason.EXPIRED
    assert processor.expire_stale_claims() == 0


def test_expiry_waits_for_running_league(processor, store, clock):
    claim = processor.submit_claim("A", _add("P", 10))
    clock.set(FIRST_RUN + timedelta(minutes=1))
    _hold_lease(store, clock)

    assert processor.expire_stale_claims("L1") == 0
    assert store.get_claim(claim.claim_id).is_pending


def test_owner_cancels_claim(processor, store):
    claim = processor.submit_claim("A", _add("P", 10))

    cancelled = processor.cancel_claim(claim.claim_id, "A")

    assert cancelled.status is ClaimStatus.CANCELLED
    assert cancelled.failure_reason is FailureReason.CANCELLED_BY_USER
    assert cancelled.processed_by is ProcessedBy.USER
    assert store.get_claim(claim.claim_id).status is ClaimStatus.CANCELLED
    with pytest.raises(ClaimCancelError) as excinfo:
        processor.cancel_claim(claim.claim_id, "A")
    assert excinfo.value.code is CancelErrorCode.NOT_PENDING


def test_commissioner_can_cancel_others_cannot(processor):
    claim = processor.submit_claim("A", _add("P", 10))

    with pytest.raises(ClaimCancelError) as excinfo:
        processor.cancel_claim(claim.claim_id, "B")
    assert excinfo.value.code is CancelErrorCode.NOT_OWNER

    cancelled = processor.cancel_claim(claim.claim_id, "C")
    assert cancelled.failure_reason is FailureReason.CANCELLED_BY_COMMISSIONER
    assert cancelled.processed_by is ProcessedBy.COMMISSIONER


def test_cancel_during_run_is_refused(processor, store, clock):
    claim = processor.submit_claim("A", _add("P", 10))
    _hold_lease(store, clock)

    with pytest.raises(ClaimCancelError) as excinfo:
        processor.cancel_claim(claim.claim_id, "A")

    assert excinfo.value.code is CancelErrorCode.RUN_IN_PROGRESS
    assert store.get_claim(claim.claim_id).is_pending


def test_cancel_unknown_claim(processor):
    with pytest.raises(ClaimNotFoundError):
        processor.cancel_claim("nope", "A")


def test_install_registers_league_jobs(processor, store):
    seed(store, make_league("L2", mode=WaiverMode.PRIORITY), make_team("X", "L2"))
    scheduler = Scheduler(processor.clock, max_workers=1)

    processor.install(scheduler)

    assert sorted(scheduler.job_names()) == ["cleanup", "priority:L2", "waivers:L1", "waivers:L2"]
    assert scheduler.get("waivers:L1").next_run == FIRST_RUN
    assert scheduler.get("priority:L2").next_run == datetime(2025, 9, 17, 3, 59, tzinfo=timezone.utc)


def test_sync_drops_jobs_for_removed_leagues(processor, store):
    scheduler = Scheduler(processor.clock, max_workers=1)
    processor.install(scheduler)
    store.save_league(make_league(waivers=False))

    assert processor.sync_schedule(scheduler) == []
    assert scheduler.job_names() == ["cleanup"]


def test_scheduled_run_fires_at_processing_time(processor, store, clock):
    claim = processor.submit_claim("A", _add("P", 10))
    scheduler = Scheduler(clock, max_workers=1)
    processor.install(scheduler)

    clock.set(FIRST_RUN)
    assert "waivers:L1" in scheduler.run_pending()

    assert store.get_claim(claim.claim_id).status is ClaimStatus.SUCCESSFUL
    (run,) = store.list_runs()
    assert run.trigger == TRIGGER_SCHEDULED


def test_cleanup_purges_old_history(processor, store, clock):
    old, recent = store_claims(
        store,
        make_claim("A", add="old"),
        make_claim("B", add="recent"),
    )
    store.finalize_claim(old.fail(FailureReason.OUTBID, at=START - timedelta(days=400)))
    store.finalize_claim(recent.fail(FailureReason.OUTBID, at=START - timedelta(days=1)))

    assert processor.cleanup() == {"expired": 0, "deleted": 1, "redelivered": 0}
    assert store.get_claim(old.claim_id) is None
    assert store.get_claim(recent.claim_id) is not None


def test_stats_and_health(processor, store):
    assert processor.processing_stats()["total_runs"] == 0
    processor.submit_claim("A", _add("P", 10))
    processor.submit_claim("B", _add("P", 5))
    processor.trigger_resolution("L1")

    stats = processor.processing_stats()
    assert stats["total_runs"] == 1
    assert stats["total_claims"] == 2
    assert stats["successful_claims"] == 1
    assert stats["success_rate"] == 50
    assert stats["last_run"] == START.isoformat()
    assert stats["is_processing"] is False

    health = processor.health_check()
    assert health["status"] == "healthy"
    assert health["processing_history"] == 1
    assert health["scheduled_jobs"] == []
    assert health["undelivered_events"] == 0


def test_next_processing_times(processor):
    (entry,) = processor.next_processing_times()
    assert entry["league_id"] == "L1"
    assert entry["next_processing"] == FIRST_RUN
    assert entry["mode"] == "faab"


def test_team_budget_accounts_for_pending_bids(processor):
    processor.submit_claim("A", _add("P", 10))
    processor.submit_claim("A", _add("Q", 25))

    assert processor.team_budget("A") == {
        "total": 100,
        "remaining": 100,
        "spent": 0,
        "pending_bids": 35,
        "available": 65,
    }


def test_league_report_filters_by_week(processor):
    processor.submit_claim("A", _add("P", 10))
    processor.trigger_resolution("L1")

    claims, summary = processor.league_report("L1", week=3)
    assert [c.add_player_id for c in claims] == ["P"]
    assert summary.total_faab_spent == 10
    assert processor.league_report("L1", week=4)[0] == []


def test_run_that_loses_its_lease_undoes_the_claim(store, clock, sink):
    seed(store, make_league(), make_team("A"), make_team("B", priority=2))
    (claim,) = store_claims(store, make_claim("A", add="P", bid=30))
    roster = StallingRoster(store, clock, timedelta(minutes=20))
    processor = WaiverProcessor(store, roster=roster, reporter=ResultReporter(sink), clock=clock)
    roster.processor = processor

    with pytest.raises(LeaseLostError):
        processor.trigger_resolution("L1")

    resolved = store.get_claim(claim.claim_id)
    assert resolved.status is ClaimStatus.FAILED
    assert resolved.failure_reason is FailureReason.PLAYER_UNAVAILABLE
    team = store.get_team("A")
    assert not team.has_player("P")
    assert (team.faab_remaining, team.faab_spent) == (100, 0)
    assert not store.is_rostered("L1", "P")
    assert sorted(run.state for run in store.list_runs()) == ["completed", "failed"]
    assert store.get_lease("L1") is None
    assert len(sink.of_type("waiver_run_completed")) == 1


def test_long_run_keeps_its_lease(store, clock, sink):
    seed(store, make_league(), make_team("A"), make_team("B", priority=2))
    store_claims(store, make_claim("A", add="P", bid=10), make_claim("B", add="Q", bid=5))

    class SlowRoster(StoreRosterService):
        def add_player(self, team_id, player_id, **kwargs):
            super().add_player(team_id, player_id, **kwargs)
            clock.advance(timedelta(minutes=10))

    processor = WaiverProcessor(store, roster=SlowRoster(store), reporter=ResultReporter(sink), clock=clock)

    summary = processor.trigger_resolution("L1")

    assert summary.successful == 2
    assert store.team_has_player("A", "P")
    assert store.team_has_player("B", "Q")


def test_available_players_lists_contested_free_agents(processor):
    processor.submit_claim("A", _add("P", 10))
    processor.submit_claim("B", _add("P", 5))
    processor.submit_claim("C", _add("Q", 3))

    assert processor.available_players("L1") == [
        {"player_id": "P", "pending_claims": 2},
        {"player_id": "Q", "pending_claims": 1},
    ]
    assert processor.available_players("L1", ["a1", "Z", "Q", "Q"]) == [
        {"player_id": "Q", "pending_claims": 1},
        {"player_id": "Z", "pending_claims": 0},
    ]
    with pytest.raises(LeagueNotFoundError):
        processor.available_players("missing")
