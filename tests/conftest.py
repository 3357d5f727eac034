"""Pytest configuration and fixtures for faucet tests."""

import os

import pytest

from purple_faucet.blockchain.ledger import InMemoryLedger
from purple_faucet.faucet.engine import FaucetEngine
from purple_faucet.faucet.guards import Ownable, Pausable

# Digit-only addresses are already in checksum form
OWNER = "0x1111111111111111111111111111111111111111"
FAUCET = "0x2222222222222222222222222222222222222222"

START_TIME = 1_700_000_000


class FakeClock:
    """Settable unix clock."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear faucet environment variables before each test."""
    for key in list(os.environ.keys()):
        if key.startswith("PURPLE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def engine(ledger, clock):
    """Engine with default policy owned by OWNER."""
    return FaucetEngine(FAUCET, ledger, Ownable(OWNER), Pausable(), clock=clock)
