"""REST API for the waiver engine."""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import FastAPI, HTTPException, Query

from waiverwire.api.schemas import (
    AvailablePlayer,
    AvailablePlayersResponse,
    BudgetResponse,
    CancelClaimRequest,
    ClaimListResponse,
    ClaimResponse,
    ClaimSubmission,
    LeagueReportResponse,
    ProcessingTimeResponse,
)
from waiverwire.config import load_settings
from waiverwire.errors import (
    ClaimCancelError,
    ClaimNotFoundError,
    ClaimValidationError,
    LeagueNotFoundError,
    LeaseLostError,
    TeamNotFoundError,
    WaiverError,
)
from waiverwire.models import CancelErrorCode, Claim, ClaimStatus
from waiverwire.persistence import WaiverStore
from waiverwire.processor import TRIGGER_MANUAL, WaiverProcessor
from waiverwire.reporting import RunSummary


_CANCEL_STATUS = {
    CancelErrorCode.NOT_OWNER: 403,
    CancelErrorCode.NOT_PENDING: 409,
    CancelErrorCode.RUN_IN_PROGRESS: 409,
}


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _parse_status(status: Optional[str]) -> Optional[ClaimStatus]:
    if status is None:
        return None
    try:
        return ClaimStatus(status.upper())
    except ValueError:
        raise _error(400, "INVALID_STATUS", f"Unknown claim status {status!r}") from None


def create_app(store: WaiverStore | None = None, processor: WaiverProcessor | None = None) -> FastAPI:
    app = FastAPI(title="waiverwire")
    if processor is None:
        if store is None:
            processor = WaiverProcessor.from_settings(load_settings())
        else:
            processor = WaiverProcessor(store)
    app.state.processor = processor
    app.state.store = processor.store

    def to_response(claim: Claim) -> ClaimResponse:
        return ClaimResponse.from_claim(claim, processor.clock.now())

    def to_list(claims: List[Claim]) -> ClaimListResponse:
        return ClaimListResponse(claims=[to_response(claim) for claim in claims], total=len(claims))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/claims", response_model=ClaimResponse, status_code=201)
    async def submit_claim(payload: ClaimSubmission):
        try:
            claim = processor.submit_claim(payload.team_id, payload.to_request())
        except TeamNotFoundError as exc:
            raise _error(404, "TEAM_NOT_FOUND", str(exc)) from exc
        except LeagueNotFoundError as exc:
            raise _error(404, "LEAGUE_NOT_FOUND", str(exc)) from exc
        except ClaimValidationError as exc:
            raise _error(400, exc.code.value, exc.message) from exc
        return to_response(claim)

    @app.post("/claims/{claim_id}/cancel", response_model=ClaimResponse)
    async def cancel_claim(claim_id: str, payload: CancelClaimRequest):
        try:
            claim = processor.cancel_claim(claim_id, payload.team_id)
        except (ClaimNotFoundError, TeamNotFoundError, LeagueNotFoundError) as exc:
            raise _error(404, "NOT_FOUND", str(exc)) from exc
        except ClaimCancelError as exc:
            raise _error(_CANCEL_STATUS[exc.code], exc.code.value, exc.message) from exc
        return to_response(claim)

    @app.get("/teams/{team_id}/claims", response_model=ClaimListResponse)
    async def team_claims(team_id: str, status: Optional[str] = None, limit: int = Query(50, ge=1, le=500)):
        if processor.store.get_team(team_id) is None:
            raise _error(404, "TEAM_NOT_FOUND", f"Team {team_id} not found")
        claims = processor.store.list_claims(team_id=team_id, status=_parse_status(status), limit=limit)
        return to_list(claims)

    @app.get("/leagues/{league_id}/claims", response_model=ClaimListResponse)
    async def league_claims(league_id: str, status: Optional[str] = None, limit: int = Query(100, ge=1, le=500)):
        if processor.store.get_league(league_id) is None:
            raise _error(404, "LEAGUE_NOT_FOUND", f"League {league_id} not found")
        claims = processor.store.list_claims(league_id=league_id, status=_parse_status(status), limit=limit)
        return to_list(claims)

    @app.post("/leagues/{league_id}/process", response_model=RunSummary)
    def process_league(league_id: str):
        try:
            summary = processor.trigger_resolution(league_id, trigger=TRIGGER_MANUAL)
        except LeagueNotFoundError as exc:
            raise _error(404, "LEAGUE_NOT_FOUND", str(exc)) from exc
        except LeaseLostError as exc:
            raise _error(409, "RUN_IN_PROGRESS", str(exc)) from exc
        except WaiverError as exc:
            raise _error(400, "PROCESSING_FAILED", str(exc)) from exc
        if summary is None:
            raise _error(409, "RUN_IN_PROGRESS", "Waivers are already being processed for this league")
        return summary

    @app.get("/leagues/{league_id}/processing-time", response_model=ProcessingTimeResponse)
    async def processing_time(league_id: str):
        league = processor.store.get_league(league_id)
        if league is None:
            raise _error(404, "LEAGUE_NOT_FOUND", f"League {league_id} not found")
        settings = league.waiver_settings
        if settings is None:
            raise _error(400, "WAIVERS_NOT_CONFIGURED", "Waivers not configured for this league")
        now = processor.clock.now()
        next_time = settings.next_processing_time(now)
        return ProcessingTimeResponse(
            league_id=league_id,
            next_processing=next_time,
            time_remaining_seconds=(next_time - now).total_seconds(),
            mode=settings.mode.value,
            timezone=settings.timezone,
        )

    @app.get("/leagues/{league_id}/report", response_model=LeagueReportResponse)
    async def league_report(league_id: str, week: Optional[int] = Query(None, ge=1, le=18)):
        try:
            claims, summary = processor.league_report(league_id, week=week)
        except LeagueNotFoundError as exc:
            raise _error(404, "LEAGUE_NOT_FOUND", str(exc)) from exc
        return LeagueReportResponse(
            league_id=league_id,
            week=week,
            claims=[to_response(claim) for claim in claims],
            summary=summary,
        )

    @app.get("/leagues/{league_id}/available", response_model=AvailablePlayersResponse)
    async def available_players(league_id: str, player_id: Optional[List[str]] = Query(None)):
        try:
            entries = processor.available_players(league_id, player_id or ())
        except LeagueNotFoundError as exc:
            raise _error(404, "LEAGUE_NOT_FOUND", str(exc)) from exc
        players = [AvailablePlayer(**entry) for entry in entries]
        return AvailablePlayersResponse(league_id=league_id, players=players, total=len(players))

    @app.get("/teams/{team_id}/budget", response_model=BudgetResponse)
    async def team_budget(team_id: str):
        try:
            budget = processor.team_budget(team_id)
        except (TeamNotFoundError, LeagueNotFoundError) as exc:
            raise _error(404, "NOT_FOUND", str(exc)) from exc
        return BudgetResponse(team_id=team_id, **budget)

    @app.get("/processor/stats")
    async def processor_stats() -> dict[str, Any]:
        return processor.processing_stats()

    @app.get("/processor/health")
    async def processor_health() -> dict[str, Any]:
        return processor.health_check()

    return app


__all__ = ["create_app"]
