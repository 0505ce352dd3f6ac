"""League-level orchestration: runs, leases, sweeps and scheduling."""

from __future__ import annotations

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar
from uuid import uuid4

from waiverwire.claims import ClaimRequest, ClaimValidator
from waiverwire.clock import Clock, SystemClock
from waiverwire.config import DEFAULT_TIMEZONE, Settings, get_cadence
from waiverwire.errors import (
    ClaimCancelError,
    ClaimNotFoundError,
    LeaseLostError,
    LeagueNotFoundError,
    WaiverError,
)
from waiverwire.models import CancelErrorCode, Claim, ClaimStatus, FailureReason, League, LeagueStatus
from waiverwire.persistence import WaiverStore
from waiverwire.reporting import ResultReporter, RunResult, RunSummary, WebhookEventSink
from waiverwire.resolution import rerank_priorities, resolver_for
from waiverwire.roster import RosterService, StoreRosterService
from waiverwire.scheduler import Daily, Scheduler, Weekly


logger = logging.getLogger(__name__)

T = TypeVar("T")

TRIGGER_SCHEDULED = "SCHEDULED"
TRIGGER_MANUAL = "MANUAL"

DEFAULT_LEASE_TTL = timedelta(minutes=15)
DEFAULT_RERANK_LEAD = timedelta(hours=3, minutes=1)
DEFAULT_RETENTION = timedelta(days=365)
STATS_WINDOW = 10
REPORT_LIMIT = 100

CLEANUP_JOB = "cleanup"
_RESOLUTION_PREFIX = "waivers:"
_RERANK_PREFIX = "priority:"
_MAINTENANCE_KEY = "__maintenance__"


@dataclass
class BatchResult:
    """Aggregate outcome of :meth:`WaiverProcessor.process_all_leagues`."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    total_leagues: int = 0
    processed_leagues: int = 0
    skipped_leagues: List[str] = field(default_factory=list)
    total_claims: int = 0
    successful_claims: int = 0
    failed_claims: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total_leagues": self.total_leagues,
            "processed_leagues": self.processed_leagues,
            "skipped_leagues": list(self.skipped_leagues),
            "total_claims": self.total_claims,
            "successful_claims": self.successful_claims,
            "failed_claims": self.failed_claims,
            "errors": list(self.errors),
        }


class WaiverProcessor:
    """Entry point for submitting, cancelling and resolving waiver claims.

    Every mutation of a league's claims outside submission happens while
    holding that league's lease row, so two processes (or two threads)
    never resolve, expire or cancel claims of the same league at once.
    """

    def __init__(
        self,
        store: WaiverStore,
        *,
        roster: RosterService | None = None,
        reporter: ResultReporter | None = None,
        clock: Clock | None = None,
        lease_ttl: timedelta = DEFAULT_LEASE_TTL,
        max_workers: int = 4,
        retention: timedelta = DEFAULT_RETENTION,
        rerank_lead: timedelta = DEFAULT_RERANK_LEAD,
    ):
        self.store = store
        self.roster = roster or StoreRosterService(store)
        self.reporter = reporter or ResultReporter(store=store)
        self.clock = clock or SystemClock()
        self.lease_ttl = lease_ttl
        self.max_workers = max(1, max_workers)
        self.retention = retention
        self.rerank_lead = rerank_lead
        self.validator = ClaimValidator(store, self.roster, clock=self.clock)
        self._scheduler: Optional[Scheduler] = None
        self._active: set[str] = set()
        self._active_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Clock | None = None) -> "WaiverProcessor":
        store = WaiverStore(settings.db_path)
        sink = WebhookEventSink(settings.webhook_url) if settings.webhook_url else None
        return cls(
            store,
            reporter=ResultReporter(sink, store=store),
            clock=clock,
            lease_ttl=timedelta(seconds=settings.lease_ttl_seconds),
            max_workers=settings.max_workers,
            retention=timedelta(days=settings.retention_days),
        )

    @property
    def is_processing(self) -> bool:
        with self._active_lock:
            return bool(self._active)

    # -- claims ------------------------------------------------------------

    def submit_claim(self, team_id: str, request: ClaimRequest) -> Claim:
        return self.validator.submit(team_id, request)

    def cancel_claim(self, claim_id: str, requesting_team_id: str) -> Claim:
        """Cancel a pending claim as its owner or as the league commissioner."""

        claim = self.store.get_claim(claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        if not claim.is_pending:
            raise ClaimCancelError(CancelErrorCode.NOT_PENDING, f"Claim is already {claim.status.value}")
        requester = self.roster.get_team(requesting_team_id)
        league = self._require_league(claim.league_id)
        by_commissioner = claim.team_id != requester.team_id
        if by_commissioner and not (
            requester.league_id == league.league_id and league.commissioner_team_id == requester.team_id
        ):
            raise ClaimCancelError(CancelErrorCode.NOT_OWNER, "Only the claim owner or commissioner can cancel")

        def _cancel() -> Claim:
            current = self.store.get_claim(claim_id)
            if current is None:
                raise ClaimNotFoundError(claim_id)
            try:
                cancelled = current.cancel(at=self.clock.now(), by_commissioner=by_commissioner)
            except ValueError:
                raise ClaimCancelError(
                    CancelErrorCode.NOT_PENDING,
                    f"Claim is already {current.status.value}",
                ) from None
            if not self.store.finalize_claim(cancelled):
                raise ClaimCancelError(CancelErrorCode.NOT_PENDING, "Claim was processed concurrently")
            return cancelled

        run_id = uuid4().hex
        if not self.store.acquire_lease(league.league_id, run_id, now=self.clock.now(), ttl=self.lease_ttl):
            raise ClaimCancelError(CancelErrorCode.RUN_IN_PROGRESS, "Waivers are being processed for this league")
        try:
            cancelled = _cancel()
        finally:
            self.store.release_lease(league.league_id, run_id)
        logger.info(
            "Claim %s cancelled by %s%s",
            claim_id,
            requesting_team_id,
            " (commissioner)" if by_commissioner else "",
        )
        return cancelled

    # -- resolution --------------------------------------------------------

    def trigger_resolution(self, league_id: str, *, trigger: str = TRIGGER_MANUAL) -> Optional[RunSummary]:
        """Resolve the league's pending claims; ``None`` if a run already holds the lease."""

        league = self._require_league(league_id)
        if league.waiver_settings is None:
            raise WaiverError(f"Waivers not configured for league {league_id}")

        run_id = uuid4().hex
        started = self.clock.now()
        if not self.store.acquire_lease(league_id, run_id, now=started, ttl=self.lease_ttl):
            logger.warning("Skipping %s waiver run for league %s: a run is already in progress", trigger, league_id)
            return None

        with self._active_lock:
            self._active.add(league_id)
        try:
            self.store.create_run(league_id=league_id, trigger=trigger, run_id=run_id, started_at=started)
            logger.info("Waiver run %s started for league %s (%s)", run_id, league_id, trigger)
            try:
                summary = self._resolve(league, run_id)
            except Exception as exc:
                logger.error("Waiver run %s for league %s failed: %s", run_id, league_id, exc)
                self.store.finish_run(run_id, state="failed", message=str(exc), finished_at=self.clock.now())
                raise
            self.store.finish_run(
                run_id,
                state="completed",
                summary=summary.model_dump(mode="json"),
                finished_at=self.clock.now(),
            )
            logger.info(
                "Waiver run %s for league %s completed: %d successful, %d failed",
                run_id,
                league_id,
                summary.successful,
                summary.failed,
            )
            return summary
        finally:
            self.store.release_lease(league_id, run_id)
            with self._active_lock:
                self._active.discard(league_id)

    def _resolve(self, league: League, run_id: str) -> RunSummary:
        pending = self.store.list_pending_claims(league.league_id)
        resolver = resolver_for(
            league,
            self.store,
            self.roster,
            clock=self.clock,
            heartbeat=partial(self._renew_lease, league.league_id, run_id),
        )
        processed = resolver.resolve(league, pending)
        result = RunResult(
            run_id=run_id,
            league_id=league.league_id,
            week=league.current_week,
            claims=tuple(processed),
            completed_at=self.clock.now(),
        )
        return self.reporter.report(result)

    def process_all_leagues(self, *, trigger: str = TRIGGER_MANUAL) -> BatchResult:
        """Resolve every active league with waivers, in parallel across leagues."""

        leagues = self._waiver_leagues()
        batch = BatchResult(started_at=self.clock.now(), total_leagues=len(leagues))
        logger.info("Processing waivers for %d active league(s)", len(leagues))

        def run(league: League) -> Optional[RunSummary]:
            return self.trigger_resolution(league.league_id, trigger=trigger)

        with ThreadPoolExecutor(max_workers=min(self.max_workers, max(1, len(leagues)))) as pool:
            futures = {league.league_id: (league, pool.submit(run, league)) for league in leagues}
            for league_id, (league, future) in futures.items():
                try:
                    summary = future.result()
                except Exception as exc:
                    logger.error("Error processing league %s: %s", league.name, exc)
                    batch.errors.append({"league_id": league_id, "league_name": league.name, "error": str(exc)})
                    continue
                if summary is None:
                    batch.skipped_leagues.append(league_id)
                    continue
                batch.processed_leagues += 1
                batch.total_claims += summary.processed
                batch.successful_claims += summary.successful
                batch.failed_claims += summary.failed

        batch.finished_at = self.clock.now()
        logger.info(
            "Waiver processing completed: %d successful, %d failed across %d league(s)",
            batch.successful_claims,
            batch.failed_claims,
            batch.processed_leagues,
        )
        return batch

    # -- priorities --------------------------------------------------------

    def update_league_priorities(self, league_id: str) -> Optional[Dict[str, int]]:
        """Re-rank a priority league by standings; FAAB leagues are left alone."""

        league = self._require_league(league_id)
        if league.waiver_settings is None or league.waiver_settings.is_faab:
            logger.info("League %s does not use rolling priority; skipping re-rank", league_id)
            return {}
        return self._with_lease(league_id, "priority update", lambda: rerank_priorities(self.roster, league_id))

    def update_all_priorities(self) -> Dict[str, Dict[str, int]]:
        updated: Dict[str, Dict[str, int]] = {}
        for league in self._waiver_leagues():
            if league.waiver_settings is None or league.waiver_settings.is_faab:
                continue
            ranks = self.update_league_priorities(league.league_id)
            if ranks is not None:
                updated[league.league_id] = ranks
        return updated

    # -- maintenance -------------------------------------------------------

    def expire_stale_claims(self, league_id: str | None = None) -> int:
        """Fail pending claims whose window has closed with ``EXPIRED``."""

        now = self.clock.now()
        if league_id is not None:
            league_ids = [league_id]
        else:
            league_ids = sorted({claim.league_id for claim in self.store.list_expired_pending(now)})

        total = 0
        for lid in league_ids:
            expired = self._with_lease(lid, "expiration sweep", partial(self._expire_league, lid, now))
            total += expired or 0
        if total:
            logger.info("Expired %d stale waiver claim(s)", total)
        return total

    def _expire_league(self, league_id: str, now: datetime) -> int:
        count = 0
        for claim in self.store.list_expired_pending(now, league_id=league_id):
            if self.store.finalize_claim(claim.fail(FailureReason.EXPIRED, at=now)):
                count += 1
        return count

    def cleanup(self) -> Dict[str, int]:
        """Daily maintenance: expire claims, purge old history, re-sync jobs."""

        expired = self.expire_stale_claims()
        cutoff = self.clock.now() - self.retention
        deleted = self.store.delete_resolved_before(cutoff)
        redelivered = self.reporter.retry_pending()
        if self._scheduler is not None:
            self.sync_schedule(self._scheduler)
        logger.info("Waiver cleanup: %d expired, %d purged, %d event(s) re-sent", expired, deleted, redelivered)
        return {"expired": expired, "deleted": deleted, "redelivered": redelivered}

    # -- reporting ---------------------------------------------------------

    def processing_stats(self) -> Dict[str, Any]:
        recent = self.store.list_runs(limit=STATS_WINDOW)
        finished = [run for run in recent if run.duration is not None]
        total_claims = sum(int(run.summary.get("processed", 0)) for run in recent)
        successful = sum(int(run.summary.get("successful", 0)) for run in recent)
        durations = [run.duration.total_seconds() for run in finished if run.duration is not None]
        return {
            "total_runs": self.store.count_runs(),
            "recent_runs": len(recent),
            "failed_runs": sum(1 for run in recent if run.state == "failed"),
            "average_duration": round(sum(durations) / len(durations), 3) if durations else 0.0,
            "total_claims": total_claims,
            "successful_claims": successful,
            "success_rate": round(successful / total_claims * 100) if total_claims else 0,
            "last_run": recent[0].started_at.isoformat() if recent else None,
            "is_processing": self.is_processing,
        }

    def health_check(self) -> Dict[str, Any]:
        status = "healthy"
        history = 0
        last_processing = None
        try:
            history = self.store.count_runs()
            runs = self.store.list_runs(limit=1)
            last_processing = runs[0].started_at.isoformat() if runs else None
        except sqlite3.Error as exc:
            logger.warning("Health check could not read run history: %s", exc)
            status = "degraded"
        with self._active_lock:
            active = sorted(self._active)
        return {
            "status": status,
            "is_processing": bool(active),
            "active_leagues": active,
            "scheduled_jobs": self._scheduler.job_names() if self._scheduler else [],
            "processing_history": history,
            "last_processing": last_processing,
            "undelivered_events": self.reporter.pending_events,
        }

    def next_processing_times(self) -> List[Dict[str, Any]]:
        now = self.clock.now()
        times: List[Dict[str, Any]] = []
        for league in self._waiver_leagues():
            settings = league.waiver_settings
            if settings is None:
                continue
            times.append(
                {
                    "league_id": league.league_id,
                    "league_name": league.name,
                    "next_processing": settings.next_processing_time(now),
                    "mode": settings.mode.value,
                }
            )
        return times

    def league_report(self, league_id: str, *, week: int | None = None) -> tuple[List[Claim], RunSummary]:
        self._require_league(league_id)
        claims = self.store.list_claims(
            league_id=league_id,
            statuses=(ClaimStatus.SUCCESSFUL, ClaimStatus.FAILED),
            week=week,
            limit=REPORT_LIMIT,
        )
        summary = self.reporter.summarize(RunResult(league_id=league_id, week=week, claims=tuple(claims)))
        return claims, summary

    def available_players(self, league_id: str, player_ids: Sequence[str] = ()) -> List[Dict[str, Any]]:
        """Free agents with their pending-claim counts, most contested first.

        With no ``player_ids`` every player that currently draws a pending
        claim is listed. Bid amounts are never exposed.
        """

        self._require_league(league_id)
        counts = self.store.pending_claim_counts(league_id)
        candidates = list(dict.fromkeys(player_ids)) if player_ids else list(counts)
        players = [
            {"player_id": player_id, "pending_claims": counts.get(player_id, 0)}
            for player_id in candidates
            if not self.store.is_rostered(league_id, player_id)
        ]
        players.sort(key=lambda entry: (-entry["pending_claims"], entry["player_id"]))
        return players

    def team_budget(self, team_id: str) -> Dict[str, int]:
        team = self.roster.get_team(team_id)
        league = self._require_league(team.league_id)
        pending = self.store.list_claims(team_id=team_id, status=ClaimStatus.PENDING)
        pending_bids = sum(claim.bid_amount for claim in pending)
        budget = league.waiver_settings.budget if league.waiver_settings else 0
        return {
            "total": budget,
            "remaining": team.faab_remaining,
            "spent": team.faab_spent,
            "pending_bids": pending_bids,
            "available": max(0, team.faab_remaining - pending_bids),
        }

    # -- scheduling --------------------------------------------------------

    def install(self, scheduler: Scheduler) -> None:
        """Register the daily cleanup plus per-league jobs on ``scheduler``."""

        self._scheduler = scheduler
        cleanup = get_cadence("cleanup")
        scheduler.register(CLEANUP_JOB, Daily(at=cleanup.at, tz=DEFAULT_TIMEZONE), self.cleanup, key=_MAINTENANCE_KEY)
        self.sync_schedule(scheduler)

    def sync_schedule(self, scheduler: Scheduler) -> List[str]:
        """Align league jobs with the leagues currently stored."""

        wanted: Dict[str, tuple[Weekly, Callable[[], object], str]] = {}
        for league in self._waiver_leagues():
            settings = league.waiver_settings
            if settings is None:
                continue
            weekly = Weekly(day=settings.process_day, at=settings.process_time, tz=settings.timezone)
            wanted[_RESOLUTION_PREFIX + league.league_id] = (
                weekly,
                partial(self.trigger_resolution, league.league_id, trigger=TRIGGER_SCHEDULED),
                league.league_id,
            )
            if not settings.is_faab:
                wanted[_RERANK_PREFIX + league.league_id] = (
                    weekly.before(self.rerank_lead),
                    partial(self.update_league_priorities, league.league_id),
                    league.league_id,
                )

        for name in scheduler.job_names():
            if name.startswith((_RESOLUTION_PREFIX, _RERANK_PREFIX)) and name not in wanted:
                scheduler.unregister(name)
        for name, (cadence, action, key) in wanted.items():
            scheduler.register(name, cadence, action, key=key)
        return sorted(wanted)

    # -- helpers -----------------------------------------------------------

    def _require_league(self, league_id: str) -> League:
        league = self.store.get_league(league_id)
        if league is None:
            raise LeagueNotFoundError(league_id)
        return league

    def _waiver_leagues(self) -> List[League]:
        return self.store.list_leagues(status=LeagueStatus.ACTIVE.value, waivers_only=True)

    def _renew_lease(self, league_id: str, run_id: str) -> None:
        if not self.store.renew_lease(league_id, run_id, now=self.clock.now(), ttl=self.lease_ttl):
            raise LeaseLostError(f"Run {run_id} lost the lease for league {league_id}")

    def _with_lease(self, league_id: str, label: str, action: Callable[[], T]) -> Optional[T]:
        run_id = uuid4().hex
        if not self.store.acquire_lease(league_id, run_id, now=self.clock.now(), ttl=self.lease_ttl):
            logger.warning("Skipping %s for league %s: a run is in progress", label, league_id)
            return None
        try:
            return action()
        finally:
            self.store.release_lease(league_id, run_id)


__all__ = [
    "BatchResult",
    "DEFAULT_LEASE_TTL",
    "DEFAULT_RERANK_LEAD",
    "TRIGGER_MANUAL",
    "TRIGGER_SCHEDULED",
    "WaiverProcessor",
]
