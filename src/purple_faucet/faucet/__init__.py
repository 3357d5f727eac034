"""Faucet components: distribution engine, guards, events, state and service."""

from .engine import FaucetEngine, Transfer
from .events import EventLog, FaucetEvent, FaucetFunded, FaucetPayout
from .guards import Ownable, OwnershipGuard, Pausable, PauseSwitch
from .service import (
    FaucetHealthCheck,
    FaucetOperation,
    FaucetResult,
    FaucetService,
    FaucetStatus,
    RecipientStatus,
)
from .state import FaucetSnapshot, FaucetState, FaucetStats, StateStore

__all__ = [
    "EventLog",
    "FaucetEngine",
    "FaucetEvent",
    "FaucetFunded",
    "FaucetHealthCheck",
    "FaucetOperation",
    "FaucetPayout",
    "FaucetResult",
    "FaucetService",
    "FaucetSnapshot",
    "FaucetState",
    "FaucetStats",
    "FaucetStatus",
    "Ownable",
    "OwnershipGuard",
    "Pausable",
    "PauseSwitch",
    "RecipientStatus",
    "StateStore",
    "Transfer",
]
