import json

import httpx
import pytest

from waiverwire.models import ClaimResolution, FailureReason
from waiverwire.reporting import (
    ClaimResolved,
    InMemoryEventSink,
    ResultReporter,
    RunResult,
    WaiverRunCompleted,
    WebhookEventSink,
)

from tests.helpers import FIRST_RUN, make_claim


def _won(team_id, player, bid):
    claim = make_claim(team_id, add=player, bid=bid)
    return claim.succeed(at=FIRST_RUN, resolution=ClaimResolution(final_bid_amount=bid))


def _lost(team_id, player, bid, reason=FailureReason.OUTBID):
    return make_claim(team_id, add=player, bid=bid).fail(reason, at=FIRST_RUN)


def _run(*claims):
    return RunResult(run_id="run-1", league_id="L1", week=3, claims=claims, completed_at=FIRST_RUN)


class FlakySink:
    def __init__(self, failures):
        self.failures = failures
        self.events = []

    def send(self, event):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("sink offline")
        self.events.append(event)


def test_summarize_counts_and_spend():
    run = _run(
        _won("A", "p1", 30),
        _won("A", "p2", 0),
        _won("B", "p3", 10),
        _lost("B", "p1", 20),
        make_claim("C", add="p9", bid=4).cancel(at=FIRST_RUN),
    )

    summary = ResultReporter(InMemoryEventSink()).summarize(run)

    assert (summary.processed, summary.successful, summary.failed) == (4, 3, 1)
    assert summary.total_faab_spent == 40
    assert summary.average_bid == 20.0
    assert summary.teams["A"].successful == 2
    assert summary.teams["A"].faab_spent == 30
    assert summary.teams["B"].failed == 1
    assert "C" not in summary.teams


def test_top_bids_are_capped_at_five():
    run = _run(*(_won(f"T{i}", f"p{i}", bid) for i, bid in enumerate([5, 50, 12, 8, 40, 1, 22])))
    summary = ResultReporter(InMemoryEventSink()).summarize(run)
    assert [bid.bid_amount for bid in summary.top_bids] == [50, 40, 22, 12, 8]


def test_report_emits_claim_team_and_run_events():
    sink = InMemoryEventSink()
    run = _run(_won("A", "p1", 30), _lost("B", "p1", 20))

    ResultReporter(sink).report(run)

    assert len(sink.of_type("claim_resolved")) == 2
    teams = sink.of_type("team_waiver_report")
    assert [event.team_id for event in teams] == ["A", "B"]
    assert teams[0].faab_spent == 30
    (completed,) = sink.of_type("waiver_run_completed")
    assert isinstance(completed, WaiverRunCompleted)
    assert completed.successful == 1 and completed.failed == 1
    assert isinstance(sink.events[-1], WaiverRunCompleted)


def test_empty_run_emits_nothing():
    sink = InMemoryEventSink()
    summary = ResultReporter(sink).report(_run())
    assert summary.processed == 0
    assert sink.events == []


def test_failed_delivery_is_parked_and_retried():
    sink = FlakySink(failures=10)
    reporter = ResultReporter(sink)

    summary = reporter.report(_run(_won("A", "p1", 30)))

    assert summary.successful == 1
    assert reporter.pending_events == 3
    sink.failures = 0
    assert reporter.retry_pending() == 3
    assert reporter.pending_events == 0
    assert isinstance(sink.events[0], ClaimResolved)
    assert reporter.retry_pending() == 0


def test_webhook_sink_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    sink = WebhookEventSink("https://hooks.example.test/waivers", client=client)

    ResultReporter(sink).report(_run(_won("A", "p1", 30)))

    assert [body["event_type"] for body in seen] == [
        "claim_resolved",
        "team_waiver_report",
        "waiver_run_completed",
    ]
    assert seen[0]["status"] == "SUCCESSFUL"


def test_webhook_sink_raises_on_error_status():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    sink = WebhookEventSink("https://hooks.example.test/waivers", client=client)
    event = WaiverRunCompleted(
        league_id="L1", processed=0, successful=0, failed=0, total_faab_spent=0, completed_at=FIRST_RUN
    )
    with pytest.raises(httpx.HTTPStatusError):
        sink.send(event)


def test_memory_outbox_keeps_newest_events():
    sink = FlakySink(failures=10)
    reporter = ResultReporter(sink, max_pending=2)

    reporter.report(_run(_won("A", "p1", 30)))

    assert reporter.pending_events == 2
    sink.failures = 0
    assert reporter.retry_pending() == 2
    assert [event.event_type for event in sink.events] == ["team_waiver_report", "waiver_run_completed"]


def test_store_outbox_survives_a_new_reporter(store):
    won = _won("A", "p1", 30)
    ResultReporter(FlakySink(failures=10), store=store).report(_run(won))
    assert store.count_parked_events() == 3

    still_down = ResultReporter(FlakySink(failures=10), store=store)
    assert still_down.retry_pending() == 0
    assert [event.attempts for event in store.list_parked_events()] == [1, 1, 1]

    sink = InMemoryEventSink()
    reporter = ResultReporter(sink, store=store)
    assert reporter.pending_events == 3
    assert reporter.retry_pending() == 3
    assert reporter.pending_events == 0
    resolved, _, completed = sink.events
    assert isinstance(resolved, ClaimResolved)
    assert resolved.claim_id == won.claim_id
    assert resolved.resolution.final_bid_amount == 30
    assert isinstance(completed, WaiverRunCompleted)
    assert completed.completed_at == FIRST_RUN


def test_store_outbox_is_capped(store):
    reporter = ResultReporter(FlakySink(failures=100), store=store, max_pending=4)
    reporter.report(_run(_won("A", "p1", 30)))
    reporter.report(_run(_won("B", "p2", 10)))

    assert reporter.pending_events == 4
    assert store.list_parked_events()[-1].event_type == "waiver_run_completed"
