from __future__ import annotations

import pytest

from waiverwire.clock import ManualClock
from waiverwire.persistence import WaiverStore
from waiverwire.roster import StoreRosterService

from tests.helpers import START


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def store(tmp_path) -> WaiverStore:
    return WaiverStore(tmp_path / "waivers.sqlite")


@pytest.fixture
def roster(store) -> StoreRosterService:
    return StoreRosterService(store)
