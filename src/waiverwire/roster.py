"""Roster/team collaborator used by the validator and the executor."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Protocol

from waiverwire.errors import ClaimExecutionError, RosterUnavailableError, TeamNotFoundError
from waiverwire.models import FailureReason, RosterSpot, Team
from waiverwire.persistence import WaiverStore


logger = logging.getLogger(__name__)


class RosterService(Protocol):
    """Roster and budget primitives the waiver engine relies on."""

    def get_team(self, team_id: str) -> Team: ...

    def list_teams(self, league_id: str) -> List[Team]: ...

    def is_free_agent(self, player_id: str, league_id: str) -> bool: ...

    def has_player(self, team_id: str, player_id: str) -> bool: ...

    def add_player(self, team_id: str, player_id: str, *, slot: str = "BENCH", acquired_via: str = "waiver") -> None: ...

    def drop_player(self, team_id: str, player_id: str) -> RosterSpot: ...

    def deduct_budget(self, team_id: str, amount: int) -> None: ...

    def refund_budget(self, team_id: str, amount: int) -> None: ...

    def set_priority(self, team_id: str, rank: int) -> None: ...


class StoreRosterService:
    """RosterService backed by :class:`WaiverStore` tables.

    SQLite operational failures (locked or unreachable database) surface as
    :class:`RosterUnavailableError` so callers can abort the league run.
    """

    def __init__(self, store: WaiverStore):
        self._store = store

    def get_team(self, team_id: str) -> Team:
        team = self._call(self._store.get_team, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        return team

    def list_teams(self, league_id: str) -> List[Team]:
        return self._call(self._store.list_teams, league_id)

    def is_free_agent(self, player_id: str, league_id: str) -> bool:
        return not self._call(self._store.is_rostered, league_id, player_id)

    def has_player(self, team_id: str, player_id: str) -> bool:
        return self._call(self._store.team_has_player, team_id, player_id)

    def add_player(self, team_id: str, player_id: str, *, slot: str = "BENCH", acquired_via: str = "waiver") -> None:
        spot = RosterSpot(player_id=player_id, slot=slot, acquired_via=acquired_via)
        try:
            self._call(self._store.add_roster_spot, team_id, spot)
        except sqlite3.IntegrityError as exc:
            raise ClaimExecutionError(
                FailureReason.PLAYER_UNAVAILABLE,
                f"Player {player_id} is already rostered in the league",
            ) from exc

    def drop_player(self, team_id: str, player_id: str) -> RosterSpot:
        spot = self._call(self._store.remove_roster_spot, team_id, player_id)
        if spot is None:
            raise ClaimExecutionError(FailureReason.INVALID_DROP, f"Player {player_id} is not on team {team_id}")
        return spot

    def deduct_budget(self, team_id: str, amount: int) -> None:
        if not self._call(self._store.deduct_budget, team_id, amount):
            raise ClaimExecutionError(FailureReason.INSUFFICIENT_FAAB, f"Team {team_id} cannot cover ${amount}")

    def refund_budget(self, team_id: str, amount: int) -> None:
        self._call(self._store.refund_budget, team_id, amount)

    def set_priority(self, team_id: str, rank: int) -> None:
        self._call(self._store.set_priority, team_id, rank)

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except sqlite3.OperationalError as exc:
            logger.warning("Roster store unavailable during %s: %s", getattr(fn, "__name__", fn), exc)
            raise RosterUnavailableError(str(exc)) from exc
