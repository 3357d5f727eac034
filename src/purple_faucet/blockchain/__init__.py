"""Blockchain integration for the faucet."""

from .client import Web3Ledger, Web3Token
from .ledger import InMemoryLedger, InMemoryToken, Ledger, TokenContract

__all__ = [
    "InMemoryLedger",
    "InMemoryToken",
    "Ledger",
    "TokenContract",
    "Web3Ledger",
    "Web3Token",
]
