"""
Shared fixtures for revshare tests.
"""

import pytest

from revshare.burn import BurnEngine
from revshare.clients import DryRunChainClient, StaticSnapshotProvider
from revshare.config import EngineConfig
from revshare.ledger import MemoryLedger, SqlLedger
from revshare.models import Holding
from revshare.service import RewardService


# 2025-02-01 00:00:00 UTC
START_TIME = 1738368000
DAY = 24 * 60 * 60


class FakeClock:
    """Settable clock returning whole Unix seconds."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request, tmp_path):
    """Every ledger implementation."""
    if request.param == "memory":
        store = MemoryLedger()
    else:
        store = SqlLedger(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield store
    store.close()


@pytest.fixture
def memory_ledger():
    return MemoryLedger()


@pytest.fixture
def chain():
    return DryRunChainClient()


@pytest.fixture
def snapshots():
    return StaticSnapshotProvider({
        "2025-01": [Holding("rA", 3), Holding("rB", 1)],
        "2025-02": [Holding("rA", 1), Holding("rB", 1), Holding("rC", 1)],
    })


@pytest.fixture
def burn_engine(ledger, chain, clock):
    return BurnEngine(ledger, chain, clock=clock)


@pytest.fixture
def service(ledger, snapshots, chain, clock):
    return RewardService(ledger, snapshots, chain, chain, config=EngineConfig(), clock=clock)
