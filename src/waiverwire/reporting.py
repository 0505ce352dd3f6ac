"""Run summaries and outbound processing events."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Annotated, Deque, Dict, List, Literal, Optional, Protocol, Sequence, Tuple, Union

import httpx
from pydantic import BaseModel, Field, TypeAdapter
from pydantic.config import ConfigDict

from waiverwire.models import Claim, ClaimKind, ClaimResolution, ClaimStatus, FailureReason
from waiverwire.persistence import WaiverStore


logger = logging.getLogger(__name__)

TOP_BIDS_LIMIT = 5
DEFAULT_OUTBOX_LIMIT = 1000


class RunResult(BaseModel):
    """Claims finalized by one league run (or one reporting window)."""

    run_id: Optional[str] = None
    league_id: str
    week: Optional[int] = None
    claims: Tuple[Claim, ...] = ()
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class TeamBreakdown(BaseModel):
    team_id: str
    successful: int = 0
    failed: int = 0
    faab_spent: int = 0


class TopBid(BaseModel):
    claim_id: str
    team_id: str
    player_id: Optional[str]
    bid_amount: int


class RunSummary(BaseModel):
    league_id: str
    run_id: Optional[str] = None
    week: Optional[int] = None
    processed: int = 0
    successful: int = 0
    failed: int = 0
    teams: Dict[str, TeamBreakdown] = Field(default_factory=dict)
    total_faab_spent: int = 0
    average_bid: float = 0.0
    top_bids: List[TopBid] = Field(default_factory=list)


class ClaimResolved(BaseModel):
    event_type: Literal["claim_resolved"] = "claim_resolved"
    run_id: Optional[str] = None
    league_id: str
    claim_id: str
    team_id: str
    kind: ClaimKind
    status: ClaimStatus
    failure_reason: Optional[FailureReason] = None
    add_player_id: Optional[str] = None
    drop_player_id: Optional[str] = None
    bid_amount: int = 0
    resolution: Optional[ClaimResolution] = None
    processed_at: Optional[datetime] = None


class TeamWaiverReport(BaseModel):
    event_type: Literal["team_waiver_report"] = "team_waiver_report"
    run_id: Optional[str] = None
    league_id: str
    team_id: str
    successful_claim_ids: List[str] = Field(default_factory=list)
    failed_claim_ids: List[str] = Field(default_factory=list)
    faab_spent: int = 0


class WaiverRunCompleted(BaseModel):
    event_type: Literal["waiver_run_completed"] = "waiver_run_completed"
    run_id: Optional[str] = None
    league_id: str
    week: Optional[int] = None
    processed: int
    successful: int
    failed: int
    total_faab_spent: int
    completed_at: datetime


WaiverEvent = Union[ClaimResolved, TeamWaiverReport, WaiverRunCompleted]

_EVENT_ADAPTER: TypeAdapter[WaiverEvent] = TypeAdapter(Annotated[WaiverEvent, Field(discriminator="event_type")])


class EventSink(Protocol):
    def send(self, event: WaiverEvent) -> None: ...


class LoggingEventSink:
    """Writes each event to the log; the default when no webhook is set."""

    def send(self, event: WaiverEvent) -> None:
        logger.info("Waiver event %s: %s", event.event_type, event.model_dump_json())


class InMemoryEventSink:
    def __init__(self) -> None:
        self.events: List[WaiverEvent] = []
        self._lock = threading.Lock()

    def send(self, event: WaiverEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> List[WaiverEvent]:
        with self._lock:
            return [event for event in self.events if event.event_type == event_type]


class WebhookEventSink:
    """POSTs each event as JSON to a fixed URL."""

    def __init__(self, url: str, *, timeout: float = 10.0, client: httpx.Client | None = None):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, event: WaiverEvent) -> None:
        response = self._client.post(self.url, json=event.model_dump(mode="json"))
        response.raise_for_status()

    def close(self) -> None:
        self._client.close()


def _successful_bids(claims: Sequence[Claim]) -> List[Claim]:
    return [claim for claim in claims if claim.status is ClaimStatus.SUCCESSFUL and claim.bid_amount > 0]


class ResultReporter:
    """Summarizes finished runs and publishes their events to a sink.

    Delivery failures never propagate: the undelivered events are parked in
    an outbox and :meth:`retry_pending` tries them again later. With a
    ``store`` the outbox is the store's ``event_outbox`` table, so parked
    events survive a restart; otherwise it lives in memory. Either way it
    keeps at most ``max_pending`` events and drops the oldest beyond that.
    Claim state is never touched here.
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        *,
        store: WaiverStore | None = None,
        max_pending: int = DEFAULT_OUTBOX_LIMIT,
    ):
        self.sink: EventSink = sink or LoggingEventSink()
        self.store = store
        self.max_pending = max(1, max_pending)
        self._outbox: Deque[WaiverEvent] = deque(maxlen=self.max_pending)
        self._lock = threading.Lock()

    @property
    def pending_events(self) -> int:
        if self.store is not None:
            return self.store.count_parked_events()
        with self._lock:
            return len(self._outbox)

    def summarize(self, run: RunResult) -> RunSummary:
        finished = [claim for claim in run.claims if claim.status in (ClaimStatus.SUCCESSFUL, ClaimStatus.FAILED)]
        teams: Dict[str, TeamBreakdown] = {}
        for claim in finished:
            entry = teams.setdefault(claim.team_id, TeamBreakdown(team_id=claim.team_id))
            if claim.status is ClaimStatus.SUCCESSFUL:
                entry.successful += 1
                entry.faab_spent += claim.bid_amount
            else:
                entry.failed += 1

        paid = _successful_bids(finished)
        total_spent = sum(claim.bid_amount for claim in finished if claim.status is ClaimStatus.SUCCESSFUL)
        top = sorted(paid, key=lambda claim: (-claim.bid_amount, claim.submitted_at, claim.claim_id))
        return RunSummary(
            league_id=run.league_id,
            run_id=run.run_id,
            week=run.week,
            processed=len(finished),
            successful=sum(1 for claim in finished if claim.status is ClaimStatus.SUCCESSFUL),
            failed=sum(1 for claim in finished if claim.status is ClaimStatus.FAILED),
            teams=teams,
            total_faab_spent=total_spent,
            average_bid=(total_spent / len(paid)) if paid else 0.0,
            top_bids=[
                TopBid(
                    claim_id=claim.claim_id,
                    team_id=claim.team_id,
                    player_id=claim.add_player_id,
                    bid_amount=claim.bid_amount,
                )
                for claim in top[:TOP_BIDS_LIMIT]
            ],
        )

    def report(self, run: RunResult) -> RunSummary:
        summary = self.summarize(run)
        if not run.claims:
            return summary

        events: List[WaiverEvent] = [
            ClaimResolved(
                run_id=run.run_id,
                league_id=run.league_id,
                claim_id=claim.claim_id,
                team_id=claim.team_id,
                kind=claim.kind,
                status=claim.status,
                failure_reason=claim.failure_reason,
                add_player_id=claim.add_player_id,
                drop_player_id=claim.drop_player_id,
                bid_amount=claim.bid_amount,
                resolution=claim.resolution,
                processed_at=claim.processed_at,
            )
            for claim in run.claims
        ]

        by_team: Dict[str, List[Claim]] = defaultdict(list)
        for claim in run.claims:
            by_team[claim.team_id].append(claim)
        for team_id in sorted(by_team):
            claims = by_team[team_id]
            events.append(
                TeamWaiverReport(
                    run_id=run.run_id,
                    league_id=run.league_id,
                    team_id=team_id,
                    successful_claim_ids=[c.claim_id for c in claims if c.status is ClaimStatus.SUCCESSFUL],
                    failed_claim_ids=[c.claim_id for c in claims if c.status is ClaimStatus.FAILED],
                    faab_spent=sum(c.bid_amount for c in claims if c.status is ClaimStatus.SUCCESSFUL),
                )
            )

        events.append(
            WaiverRunCompleted(
                run_id=run.run_id,
                league_id=run.league_id,
                week=run.week,
                processed=summary.processed,
                successful=summary.successful,
                failed=summary.failed,
                total_faab_spent=summary.total_faab_spent,
                completed_at=run.completed_at,
            )
        )
        self._park(self._deliver(events))
        logger.info(
            "Reported run %s for league %s: %d successful, %d failed",
            run.run_id,
            run.league_id,
            summary.successful,
            summary.failed,
        )
        return summary

    def retry_pending(self) -> int:
        """Re-send parked events; returns how many were delivered."""

        if self.store is not None:
            return self._retry_parked(self.store)
        with self._lock:
            queued = list(self._outbox)
            self._outbox.clear()
        if not queued:
            return 0
        failed = self._deliver(queued)
        self._park(failed)
        delivered = len(queued) - len(failed)
        logger.info("Retried %d waiver event(s); %d delivered", len(queued), delivered)
        return delivered

    def _retry_parked(self, store: WaiverStore) -> int:
        parked = store.list_parked_events(limit=self.max_pending)
        delivered = 0
        for entry in parked:
            event = _EVENT_ADAPTER.validate_python(entry.payload)
            try:
                self.sink.send(event)
            except Exception as exc:
                logger.warning(
                    "Redelivery of %s event %d for league %s failed (attempt %d): %s",
                    entry.event_type,
                    entry.event_id,
                    entry.league_id,
                    entry.attempts + 1,
                    exc,
                )
                store.mark_event_attempt(entry.event_id)
                continue
            store.delete_parked_event(entry.event_id)
            delivered += 1
        if parked:
            logger.info("Retried %d parked waiver event(s); %d delivered", len(parked), delivered)
        return delivered

    def _deliver(self, events: Sequence[WaiverEvent]) -> List[WaiverEvent]:
        failed: List[WaiverEvent] = []
        for event in events:
            try:
                self.sink.send(event)
            except Exception as exc:
                logger.warning("Failed to deliver %s event for league %s: %s", event.event_type, event.league_id, exc)
                failed.append(event)
        return failed

    def _park(self, events: Sequence[WaiverEvent]) -> None:
        if not events:
            return
        if self.store is not None:
            for event in events:
                self.store.park_event(event.event_type, event.league_id, event.model_dump(mode="json"))
            dropped = self.store.trim_parked_events(self.max_pending)
        else:
            with self._lock:
                dropped = max(0, len(self._outbox) + len(events) - self.max_pending)
                self._outbox.extend(events)
        if dropped:
            logger.warning("Event outbox is full; dropped %d oldest undelivered event(s)", dropped)
