"""Persistence layer for leagues, teams, claims, run history and league leases."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional
from uuid import uuid4

from waiverwire.errors import ClaimValidationError
from waiverwire.models import (
    Claim,
    ClaimResolution,
    ClaimStatus,
    League,
    RosterSettings,
    RosterSpot,
    Team,
    TeamRecord,
    ValidationCode,
    WaiverSettings,
)


RUN_STATES_FINAL = {"completed", "failed"}


@dataclass
class WaiverRun:
    run_id: str
    league_id: str
    trigger: str
    state: str
    started_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime]
    message: Optional[str]
    summary: dict

    @property
    def duration(self) -> Optional[timedelta]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass
class LeagueLease:
    league_id: str
    run_id: str
    acquired_at: datetime
    expires_at: datetime

    def active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass
class ParkedEvent:
    event_id: int
    event_type: str
    league_id: str
    payload: dict
    attempts: int
    created_at: datetime


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ts(value: datetime) -> str:
    return _utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class WaiverStore:
    """SQLite-backed store for the waiver engine.

    Every call opens its own connection, so one store can be shared by
    worker threads resolving different leagues.
    """

    def __init__(self, db_path: Path | str, *, timeout: float = 30.0):
        self._use_uri = False
        self._timeout = timeout
        if isinstance(db_path, str) and db_path.startswith("file:"):
            self.db_path: Path | str = db_path
            self._use_uri = True
        else:
            self.db_path = Path(db_path)
        self._ensure_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, uri=self._use_uri, timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS leagues (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                status TEXT NOT NULL,
                season INTEGER NOT NULL,
                current_week INTEGER NOT NULL,
                commissioner_team_id TEXT,
                waiver_settings_json TEXT,
                roster_settings_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS teams (
                id TEXT PRIMARY KEY,
                league_id TEXT NOT NULL,
                name TEXT NOT NULL,
                owner_id TEXT,
                roster_max INTEGER NOT NULL,
                faab_budget INTEGER NOT NULL,
                faab_remaining INTEGER NOT NULL,
                faab_spent INTEGER NOT NULL,
                waiver_priority INTEGER NOT NULL,
                wins INTEGER NOT NULL DEFAULT 0,
                losses INTEGER NOT NULL DEFAULT 0,
                ties INTEGER NOT NULL DEFAULT 0,
                points_for REAL NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS roster_spots (
                team_id TEXT NOT NULL,
                league_id TEXT NOT NULL,
                player_id TEXT NOT NULL,
                slot TEXT NOT NULL,
                acquired_via TEXT NOT NULL,
                added_at TEXT NOT NULL,
                PRIMARY KEY (team_id, player_id),
                UNIQUE (league_id, player_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS claims (
                id TEXT PRIMARY KEY,
                league_id TEXT NOT NULL,
                team_id TEXT NOT NULL,
                week INTEGER NOT NULL,
                season INTEGER NOT NULL,
                kind TEXT NOT NULL,
                add_player_id TEXT,
                drop_player_id TEXT,
                bid_amount INTEGER NOT NULL,
                priority_at_submission INTEGER,
                submitted_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                status TEXT NOT NULL,
                failure_reason TEXT,
                resolution_json TEXT,
                notes TEXT NOT NULL DEFAULT '',
                processed_at TEXT,
                processed_by TEXT
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS ix_claims_league_status ON claims (league_id, status)")
        conn.execute("CREATE INDEX IF NOT EXISTS ix_claims_expires ON claims (status, expires_at)")
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS ux_claims_pending_add
            ON claims (team_id, add_player_id)
            WHERE status = 'PENDING' AND add_player_id IS NOT NULL
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS waiver_runs (
                id TEXT PRIMARY KEY,
                league_id TEXT NOT NULL,
                trigger TEXT NOT NULL,
                state TEXT NOT NULL,
                message TEXT,
                summary_json TEXT NOT NULL DEFAULT '{}',
                started_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                finished_at TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS league_leases (
                league_id TEXT PRIMARY KEY,
                run_id TEXT NOT NULL,
                acquired_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS event_outbox (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                league_id TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
            """
        )

    # -- leagues -----------------------------------------------------------

    def save_league(self, league: League) -> League:
        waiver_json = league.waiver_settings.model_dump_json() if league.waiver_settings else None
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO leagues (
                    id, name, status, season, current_week, commissioner_team_id,
                    waiver_settings_json, roster_settings_json, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    status = excluded.status,
                    season = excluded.season,
                    current_week = excluded.current_week,
                    commissioner_team_id = excluded.commissioner_team_id,
                    waiver_settings_json = excluded.waiver_settings_json,
                    roster_settings_json = excluded.roster_settings_json,
                    updated_at = excluded.updated_at
                """,
                (
                    league.league_id,
                    league.name,
                    league.status.value,
                    league.season,
                    league.current_week,
                    league.commissioner_team_id,
                    waiver_json,
                    league.roster_settings.model_dump_json(),
                    now,
                ),
            )
        return league

    def get_league(self, league_id: str) -> Optional[League]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM leagues WHERE id = ?", (league_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_league(row)

    def list_leagues(self, *, status: str | None = None, waivers_only: bool = False) -> List[League]:
        query = "SELECT * FROM leagues"
        conditions: list[str] = []
        params: list[str] = []
        if status:
            conditions.append("status = ?")
            params.append(status)
        if waivers_only:
            conditions.append("waiver_settings_json IS NOT NULL")
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY id"
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_league(row) for row in rows]

    # -- teams and rosters -------------------------------------------------

    def save_team(self, team: Team) -> Team:
        """Insert or replace a team together with its roster."""

        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO teams (
                    id, league_id, name, owner_id, roster_max, faab_budget, faab_remaining,
                    faab_spent, waiver_priority, wins, losses, ties, points_for, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    league_id = excluded.league_id,
                    name = excluded.name,
                    owner_id = excluded.owner_id,
                    roster_max = excluded.roster_max,
                    faab_budget = excluded.faab_budget,
                    faab_remaining = excluded.faab_remaining,
                    faab_spent = excluded.faab_spent,
                    waiver_priority = excluded.waiver_priority,
                    wins = excluded.wins,
                    losses = excluded.losses,
                    ties = excluded.ties,
                    points_for = excluded.points_for,
                    updated_at = excluded.updated_at
                """,
                (
                    team.team_id,
                    team.league_id,
                    team.name,
                    team.owner_id,
                    team.roster_max,
                    team.faab_budget,
                    team.faab_remaining,
                    team.faab_spent,
                    team.waiver_priority,
                    team.record.wins,
                    team.record.losses,
                    team.record.ties,
                    team.record.points_for,
                    now,
                ),
            )
            conn.execute("DELETE FROM roster_spots WHERE team_id = ?", (team.team_id,))
            conn.executemany(
                """
                INSERT INTO roster_spots (team_id, league_id, player_id, slot, acquired_via, added_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (team.team_id, team.league_id, spot.player_id, spot.slot, spot.acquired_via, now)
                    for spot in team.roster
                ],
            )
        return team

    def get_team(self, team_id: str) -> Optional[Team]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM teams WHERE id = ?", (team_id,)).fetchone()
            if row is None:
                return None
            spots = conn.execute(
                "SELECT * FROM roster_spots WHERE team_id = ? ORDER BY added_at, player_id",
                (team_id,),
            ).fetchall()
            return self._row_to_team(row, spots)

    def list_teams(self, league_id: str) -> List[Team]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM teams WHERE league_id = ? ORDER BY waiver_priority, id",
                (league_id,),
            ).fetchall()
            spots = conn.execute(
                "SELECT * FROM roster_spots WHERE league_id = ? ORDER BY added_at, player_id",
                (league_id,),
            ).fetchall()
        by_team: dict[str, list[sqlite3.Row]] = {}
        for spot in spots:
            by_team.setdefault(spot["team_id"], []).append(spot)
        return [self._row_to_team(row, by_team.get(row["id"], [])) for row in rows]

    def is_rostered(self, league_id: str, player_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM roster_spots WHERE league_id = ? AND player_id = ?",
                (league_id, player_id),
            ).fetchone()
        return row is not None

    def team_has_player(self, team_id: str, player_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM roster_spots WHERE team_id = ? AND player_id = ?",
                (team_id, player_id),
            ).fetchone()
        return row is not None

    def add_roster_spot(self, team_id: str, spot: RosterSpot) -> None:
        with self._connect() as conn:
            team = conn.execute("SELECT league_id FROM teams WHERE id = ?", (team_id,)).fetchone()
            if team is None:
                raise KeyError(f"Team {team_id} not found")
            conn.execute(
                """
                INSERT INTO roster_spots (team_id, league_id, player_id, slot, acquired_via, added_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    team_id,
                    team["league_id"],
                    spot.player_id,
                    spot.slot,
                    spot.acquired_via,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def remove_roster_spot(self, team_id: str, player_id: str) -> Optional[RosterSpot]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM roster_spots WHERE team_id = ? AND player_id = ?",
                (team_id, player_id),
            ).fetchone()
            if row is None:
                return None
            conn.execute(
                "DELETE FROM roster_spots WHERE team_id = ? AND player_id = ?",
                (team_id, player_id),
            )
            return RosterSpot(player_id=row["player_id"], slot=row["slot"], acquired_via=row["acquired_via"])

    def deduct_budget(self, team_id: str, amount: int) -> bool:
        """Move ``amount`` from remaining to spent; False if the budget is short."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE teams
                SET faab_remaining = faab_remaining - ?,
                    faab_spent = faab_spent + ?,
                    updated_at = ?
                WHERE id = ? AND faab_remaining >= ?
                """,
                (amount, amount, datetime.now(timezone.utc).isoformat(), team_id, amount),
            )
            return cursor.rowcount == 1

    def refund_budget(self, team_id: str, amount: int) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE teams
                SET faab_remaining = faab_remaining + ?,
                    faab_spent = faab_spent - ?,
                    updated_at = ?
                WHERE id = ? AND faab_spent >= ?
                """,
                (amount, amount, datetime.now(timezone.utc).isoformat(), team_id, amount),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Team {team_id} has not spent ${amount}")

    def set_priority(self, team_id: str, rank: int) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE teams SET waiver_priority = ?, updated_at = ? WHERE id = ?",
                (rank, datetime.now(timezone.utc).isoformat(), team_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Team {team_id} not found")

    # -- claims ------------------------------------------------------------

    def insert_claim(self, claim: Claim) -> Claim:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO claims (
                        id, league_id, team_id, week, season, kind, add_player_id,
                        drop_player_id, bid_amount, priority_at_submission, submitted_at,
                        expires_at, status, failure_reason, resolution_json, notes,
                        processed_at, processed_by
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    self._claim_params(claim),
                )
        except sqlite3.IntegrityError as exc:
            if "claims.team_id" not in str(exc):
                raise
            raise ClaimValidationError(
                ValidationCode.DUPLICATE_PENDING_CLAIM,
                "You already have a pending claim for this player",
            ) from exc
        return claim

    def get_claim(self, claim_id: str) -> Optional[Claim]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_claim(row)

    def list_claims(
        self,
        *,
        league_id: str | None = None,
        team_id: str | None = None,
        status: ClaimStatus | str | None = None,
        statuses: Iterable[ClaimStatus | str] | None = None,
        week: int | None = None,
        limit: int | None = None,
        newest_first: bool = True,
    ) -> List[Claim]:
        query = "SELECT * FROM claims"
        conditions: list[str] = []
        params: list[str | int] = []
        if league_id:
            conditions.append("league_id = ?")
            params.append(league_id)
        if team_id:
            conditions.append("team_id = ?")
            params.append(team_id)
        if status:
            conditions.append("status = ?")
            params.append(ClaimStatus(status).value)
        if statuses:
            values = [ClaimStatus(value).value for value in statuses]
            conditions.append("status IN (" + ", ".join("?" for _ in values) + ")")
            params.extend(values)
        if week is not None:
            conditions.append("week = ?")
            params.append(week)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        order = "DESC" if newest_first else "ASC"
        query += f" ORDER BY submitted_at {order}, id {order}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_claim(row) for row in rows]

    def list_pending_claims(self, league_id: str) -> List[Claim]:
        return self.list_claims(league_id=league_id, status=ClaimStatus.PENDING, newest_first=False)

    def pending_claim_counts(self, league_id: str) -> Dict[str, int]:
        """Pending claims per add target in the league."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT add_player_id, COUNT(*) AS pending
                FROM claims
                WHERE league_id = ? AND status = 'PENDING' AND add_player_id IS NOT NULL
                GROUP BY add_player_id
                """,
                (league_id,),
            ).fetchall()
        return {row["add_player_id"]: int(row["pending"]) for row in rows}

    def find_pending_claim(self, team_id: str, add_player_id: str) -> Optional[Claim]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM claims WHERE team_id = ? AND add_player_id = ? AND status = 'PENDING'",
                (team_id, add_player_id),
            ).fetchone()
            if row is None:
                return None
            return self._row_to_claim(row)

    def finalize_claim(self, claim: Claim) -> bool:
        """Persist a claim that left PENDING; False if it was already terminal."""

        if claim.is_pending:
            raise ValueError(f"Claim {claim.claim_id} is still pending")
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE claims
                SET status = ?, failure_reason = ?, resolution_json = ?,
                    processed_at = ?, processed_by = ?
                WHERE id = ? AND status = 'PENDING'
                """,
                (
                    claim.status.value,
                    claim.failure_reason.value if claim.failure_reason else None,
                    claim.resolution.model_dump_json() if claim.resolution else None,
                    _ts(claim.processed_at) if claim.processed_at else None,
                    claim.processed_by.value if claim.processed_by else None,
                    claim.claim_id,
                ),
            )
            return cursor.rowcount == 1

    def list_expired_pending(self, now: datetime, *, league_id: str | None = None) -> List[Claim]:
        query = "SELECT * FROM claims WHERE status = 'PENDING' AND expires_at < ?"
        params: list[str] = [_ts(now)]
        if league_id:
            query += " AND league_id = ?"
            params.append(league_id)
        query += " ORDER BY expires_at, id"
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_claim(row) for row in rows]

    def count_pending(self, league_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM claims WHERE league_id = ? AND status = 'PENDING'",
                (league_id,),
            ).fetchone()
        return int(row[0])

    def delete_resolved_before(self, cutoff: datetime) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM claims
                WHERE status IN ('SUCCESSFUL', 'FAILED', 'CANCELLED')
                  AND processed_at IS NOT NULL AND processed_at < ?
                """,
                (_ts(cutoff),),
            )
            return cursor.rowcount

    # -- run history -------------------------------------------------------

    def create_run(self, *, league_id: str, trigger: str, run_id: str | None = None, started_at: datetime | None = None) -> WaiverRun:
        run_id = run_id or uuid4().hex
        started = _ts(started_at or datetime.now(timezone.utc))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO waiver_runs (id, league_id, trigger, state, started_at, updated_at)
                VALUES (?, ?, ?, 'running', ?, ?)
                """,
                (run_id, league_id, trigger, started, started),
            )
        run = self.get_run(run_id)
        if run is None:  # pragma: no cover
            raise KeyError(f"Run {run_id} not found after insert")
        return run

    def finish_run(
        self,
        run_id: str,
        *,
        state: str,
        message: Optional[str] = None,
        summary: dict | None = None,
        finished_at: datetime | None = None,
    ) -> WaiverRun:
        if state not in RUN_STATES_FINAL:
            raise ValueError(f"Unsupported final run state {state!r}")
        finished = _ts(finished_at or datetime.now(timezone.utc))
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE waiver_runs
                SET state = ?, message = ?, summary_json = ?, updated_at = ?, finished_at = ?
                WHERE id = ?
                """,
                (state, message, json.dumps(summary or {}), finished, finished, run_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Run {run_id} not found")
        run = self.get_run(run_id)
        if run is None:  # pragma: no cover
            raise KeyError(f"Run {run_id} not found after update")
        return run

    def get_run(self, run_id: str) -> Optional[WaiverRun]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM waiver_runs WHERE id = ?", (run_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_run(row)

    def list_runs(self, *, league_id: str | None = None, limit: int = 50) -> List[WaiverRun]:
        query = "SELECT * FROM waiver_runs"
        params: list[str | int] = []
        if league_id:
            query += " WHERE league_id = ?"
            params.append(league_id)
        query += " ORDER BY started_at DESC LIMIT ?"
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_run(row) for row in rows]

    def count_runs(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM waiver_runs").fetchone()
        return int(row[0])

    # -- leases ------------------------------------------------------------

    def acquire_lease(self, league_id: str, run_id: str, *, now: datetime, ttl: timedelta) -> bool:
        """Take the league's run lease unless another live holder has it."""

        acquired_at = _ts(now)
        expires_at = _ts(now + ttl)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO league_leases (league_id, run_id, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(league_id) DO UPDATE SET
                    run_id = excluded.run_id,
                    acquired_at = excluded.acquired_at,
                    expires_at = excluded.expires_at
                WHERE league_leases.expires_at <= excluded.acquired_at
                """,
                (league_id, run_id, acquired_at, expires_at),
            )
            return cursor.rowcount == 1

    def release_lease(self, league_id: str, run_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM league_leases WHERE league_id = ? AND run_id = ?",
                (league_id, run_id),
            )
            return cursor.rowcount == 1

    def renew_lease(self, league_id: str, run_id: str, *, now: datetime, ttl: timedelta) -> bool:
        """Push the lease expiry out; False once another run has taken it."""

        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE league_leases SET expires_at = ? WHERE league_id = ? AND run_id = ?",
                (_ts(now + ttl), league_id, run_id),
            )
            return cursor.rowcount == 1

    def get_lease(self, league_id: str) -> Optional[LeagueLease]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM league_leases WHERE league_id = ?", (league_id,)).fetchone()
            if row is None:
                return None
            return LeagueLease(
                league_id=row["league_id"],
                run_id=row["run_id"],
                acquired_at=datetime.fromisoformat(row["acquired_at"]),
                expires_at=datetime.fromisoformat(row["expires_at"]),
            )

    # -- undelivered events ------------------------------------------------

    def park_event(self, event_type: str, league_id: str, payload: dict, *, created_at: datetime | None = None) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO event_outbox (event_type, league_id, payload_json, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (event_type, league_id, json.dumps(payload), _ts(created_at or datetime.now(timezone.utc))),
            )
            return int(cursor.lastrowid)

    def list_parked_events(self, *, limit: int = 100) -> List[ParkedEvent]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM event_outbox ORDER BY id LIMIT ?", (limit,)).fetchall()
        return [
            ParkedEvent(
                event_id=row["id"],
                event_type=row["event_type"],
                league_id=row["league_id"],
                payload=json.loads(row["payload_json"]),
                attempts=row["attempts"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def delete_parked_event(self, event_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM event_outbox WHERE id = ?", (event_id,))
            return cursor.rowcount == 1

    def mark_event_attempt(self, event_id: int) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE event_outbox SET attempts = attempts + 1 WHERE id = ?", (event_id,))

    def count_parked_events(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM event_outbox").fetchone()
        return int(row[0])

    def trim_parked_events(self, keep: int) -> int:
        """Delete the oldest parked events beyond the newest ``keep``."""

        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM event_outbox
                WHERE id NOT IN (SELECT id FROM event_outbox ORDER BY id DESC LIMIT ?)
                """,
                (keep,),
            )
            return cursor.rowcount

    # -- row mappers -------------------------------------------------------

    def _claim_params(self, claim: Claim) -> tuple:
        return (
            claim.claim_id,
            claim.league_id,
            claim.team_id,
            claim.week,
            claim.season,
            claim.kind.value,
            claim.add_player_id,
            claim.drop_player_id,
            claim.bid_amount,
            claim.priority_at_submission,
            _ts(claim.submitted_at),
            _ts(claim.expires_at),
            claim.status.value,
            claim.failure_reason.value if claim.failure_reason else None,
            claim.resolution.model_dump_json() if claim.resolution else None,
            claim.notes,
            _ts(claim.processed_at) if claim.processed_at else None,
            claim.processed_by.value if claim.processed_by else None,
        )

    def _row_to_claim(self, row: sqlite3.Row) -> Claim:
        return Claim(
            claim_id=row["id"],
            league_id=row["league_id"],
            team_id=row["team_id"],
            week=row["week"],
            season=row["season"],
            kind=row["kind"],
            add_player_id=row["add_player_id"],
            drop_player_id=row["drop_player_id"],
            bid_amount=row["bid_amount"],
            priority_at_submission=row["priority_at_submission"],
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            status=row["status"],
            failure_reason=row["failure_reason"],
            resolution=(
                ClaimResolution.model_validate_json(row["resolution_json"]) if row["resolution_json"] else None
            ),
            notes=row["notes"] or "",
            processed_at=_parse_ts(row["processed_at"]),
            processed_by=row["processed_by"],
        )

    def _row_to_team(self, row: sqlite3.Row, spots: Iterable[sqlite3.Row]) -> Team:
        return Team(
            team_id=row["id"],
            league_id=row["league_id"],
            name=row["name"],
            owner_id=row["owner_id"],
            roster=tuple(
                RosterSpot(player_id=spot["player_id"], slot=spot["slot"], acquired_via=spot["acquired_via"])
                for spot in spots
            ),
            roster_max=row["roster_max"],
            faab_budget=row["faab_budget"],
            faab_remaining=row["faab_remaining"],
            faab_spent=row["faab_spent"],
            waiver_priority=row["waiver_priority"],
            record=TeamRecord(
                wins=row["wins"],
                losses=row["losses"],
                ties=row["ties"],
                points_for=row["points_for"],
            ),
        )

    def _row_to_league(self, row: sqlite3.Row) -> League:
        waiver_json = row["waiver_settings_json"]
        return League(
            league_id=row["id"],
            name=row["name"],
            status=row["status"],
            season=row["season"],
            current_week=row["current_week"],
            commissioner_team_id=row["commissioner_team_id"],
            waiver_settings=WaiverSettings.model_validate_json(waiver_json) if waiver_json else None,
            roster_settings=RosterSettings.model_validate_json(row["roster_settings_json"]),
        )

    def _row_to_run(self, row: sqlite3.Row) -> WaiverRun:
        return WaiverRun(
            run_id=row["id"],
            league_id=row["league_id"],
            trigger=row["trigger"],
            state=row["state"],
            started_at=datetime.fromisoformat(row["started_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            finished_at=_parse_ts(row["finished_at"]),
            message=row["message"],
            summary=json.loads(row["summary_json"]) if row["summary_json"] else {},
        )


__all__ = ["LeagueLease", "ParkedEvent", "WaiverRun", "WaiverStore", "RUN_STATES_FINAL"]
