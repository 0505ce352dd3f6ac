"""Shared plumbing for the auction and priority resolvers."""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Iterator, List, Optional, Sequence

from waiverwire.clock import Clock, SystemClock
from waiverwire.errors import ClaimExecutionError, LeaseLostError, RosterUnavailableError
from waiverwire.models import Claim, ClaimResolution, FailureReason, League
from waiverwire.persistence import WaiverStore
from waiverwire.roster import RosterService

from .executor import TransactionExecutor


logger = logging.getLogger(__name__)

Heartbeat = Callable[[], None]


def _noop() -> None:
    return None


class ClaimResolver:
    """Resolves one league's pending claims and persists each outcome.

    Claims are finalized one at a time with a conditional write, so a run
    that stops half way leaves the rest ``PENDING`` for the next attempt.
    ``heartbeat`` runs before every claim is recorded and raises
    :class:`LeaseLostError` once the run no longer owns the league; a
    successful claim whose record cannot be written is rolled back and the
    run stops.
    """

    def __init__(
        self,
        store: WaiverStore,
        roster: RosterService,
        *,
        executor: Optional[TransactionExecutor] = None,
        clock: Optional[Clock] = None,
        heartbeat: Optional[Heartbeat] = None,
    ):
        self._store = store
        self._roster = roster
        self._executor = executor or TransactionExecutor(roster)
        self._clock = clock or SystemClock()
        self._heartbeat = heartbeat or _noop

    def resolve(self, league: League, claims: Sequence[Claim]) -> List[Claim]:
        raise NotImplementedError

    @staticmethod
    def _counter() -> Iterator[int]:
        return itertools.count(1)

    def _execute(self, claim: Claim, league: League, resolution: ClaimResolution) -> Claim:
        """Run the executor for ``claim`` and persist the outcome."""

        self._heartbeat()
        succeeded = claim.succeed(at=self._clock.now(), resolution=resolution)

        def commit() -> None:
            self._heartbeat()
            self._record(succeeded)

        try:
            self._executor.execute(claim, league, commit=commit)
        except (RosterUnavailableError, LeaseLostError):
            raise
        except ClaimExecutionError as exc:
            logger.info(
                "Claim %s for team %s failed: %s (%s)",
                claim.claim_id,
                claim.team_id,
                exc.reason.value,
                exc.message,
            )
            failed = resolution.model_copy(update={"final_bid_amount": None})
            return self._finish(claim.fail(exc.reason, at=self._clock.now(), resolution=failed))
        except Exception:
            logger.exception(
                "Unexpected error processing claim %s (team=%s add=%s drop=%s)",
                claim.claim_id,
                claim.team_id,
                claim.add_player_id,
                claim.drop_player_id,
            )
            failed = resolution.model_copy(update={"final_bid_amount": None})
            return self._finish(claim.fail(FailureReason.PROCESSING_ERROR, at=self._clock.now(), resolution=failed))
        return succeeded

    def _reject(self, claim: Claim, reason: FailureReason, resolution: ClaimResolution) -> Claim:
        return self._finish(claim.fail(reason, at=self._clock.now(), resolution=resolution))

    def _finish(self, claim: Claim) -> Claim:
        self._heartbeat()
        self._record(claim)
        return claim

    def _record(self, claim: Claim) -> None:
        if not self._store.finalize_claim(claim):
            raise LeaseLostError(f"Claim {claim.claim_id} was finalized by another run")
