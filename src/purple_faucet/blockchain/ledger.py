"""Ledger abstractions used by the faucet engine.

The engine never talks to a chain directly. It asks a Ledger for balances and
code presence and hands it native transfers, and it sweeps tokens through the
TokenContract interface. In-memory implementations back simulations and tests.
"""

import re
from abc import ABC, abstractmethod

from web3 import Web3

from purple_faucet.core.errors import InvalidAddress, TransferFailed

# Ethereum address pattern: 0x followed by 40 hex characters
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def validate_address(address: str) -> bool:
    """Validate Ethereum address format.

    Parameters
    ----------
    address : str
        Address to validate.

    Returns
    -------
    bool
        True if valid Ethereum address format.
    """
    return isinstance(address, str) and bool(ADDRESS_PATTERN.match(address))


def normalize_address(address: str) -> str:
    """Return the checksummed form of an address.

    Raises
    ------
    InvalidAddress
        If the address is not 0x followed by 40 hex characters.
    """
    if not validate_address(address):
        raise InvalidAddress(address)
    return Web3.to_checksum_address(address.lower())


class Ledger(ABC):
    """Native-currency view of the chain as seen by the faucet."""

    @abstractmethod
    def balance_of(self, address: str) -> int:
        """Get the native balance of an address in wei."""
        ...

    @abstractmethod
    def has_code(self, address: str) -> bool:
        """Check whether an address hosts deployed code."""
        ...

    @abstractmethod
    def send(self, to: str, amount: int) -> str:
        """Send native currency out of the faucet's custody.

        Parameters
        ----------
        to : str
            Recipient address.
        amount : int
            Amount in wei.

        Returns
        -------
        str
            Reference of the transfer (transaction hash).

        Raises
        ------
        TransferFailed
            If the value could not be delivered.
        TransferPending
            If the transfer was broadcast but its outcome is not yet known.
        """
        ...


class TokenContract(ABC):
    """Minimal ERC20 surface needed for sweeping tokens."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Token contract address."""
        ...

    @abstractmethod
    def balance_of(self, address: str) -> int:
        """Get the token balance of an address in base units."""
        ...

    @abstractmethod
    def transfer(self, to: str, amount: int) -> bool:
        """Transfer tokens held by the faucet to an address.

        Returns False when the transfer failed; raises TransferPending when
        its outcome is not yet known.
        """
        ...


class InMemoryLedger(Ledger):
    """Ledger kept entirely in process memory.

    Only recipients are credited here; the faucet's own custody is accounted
    for by the engine's pool balance.

    Parameters
    ----------
    balances : dict[str, int] | None
        Initial balances in wei keyed by address.
    contracts : iterable of str
        Addresses that host deployed code.
    """

    def __init__(self, balances: dict[str, int] | None = None, contracts=()):
        self._balances: dict[str, int] = {}
        self._contracts: set[str] = {normalize_address(a) for a in contracts}
        self._rejecting: set[str] = set()
        self.transfers: list[tuple[str, int, str]] = []
        for address, amount in (balances or {}).items():
            self.set_balance(address, amount)

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def has_code(self, address: str) -> bool:
        return normalize_address(address) in self._contracts

    def set_balance(self, address: str, amount: int) -> None:
        """Overwrite the balance of an address."""
        self._balances[normalize_address(address)] = amount

    def deploy(self, address: str) -> None:
        """Mark an address as hosting code."""
        self._contracts.add(normalize_address(address))

    def reject_transfers(self, address: str) -> None:
        """Make every future transfer to an address fail."""
        self._rejecting.add(normalize_address(address))

    def send(self, to: str, amount: int) -> str:
        recipient = normalize_address(to)
        if recipient in self._rejecting:
            raise TransferFailed(recipient, amount, "recipient rejected funds")

        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        reference = f"0x{len(self.transfers) + 1:064x}"
        self.transfers.append((recipient, amount, reference))
        return reference


class InMemoryToken(TokenContract):
    """ERC20 token kept in process memory.

    Parameters
    ----------
    address : str
        Token contract address.
    holder : str
        Account that `transfer` spends from (the faucet).
    balances : dict[str, int] | None
        Initial token balances keyed by address.
    """

    def __init__(self, address: str, holder: str, balances: dict[str, int] | None = None):
        self._address = normalize_address(address)
        self._holder = normalize_address(holder)
        self._balances = {normalize_address(k): v for k, v in (balances or {}).items()}
        self.fail_transfers = False

    @property
    def address(self) -> str:
        return self._address

    def balance_of(self, address: str) -> int:
        return self._balances.get(normalize_address(address), 0)

    def transfer(self, to: str, amount: int) -> bool:
        recipient = normalize_address(to)
        held = self._balances.get(self._holder, 0)
        if self.fail_transfers or held < amount:
            return False
        self._balances[self._holder] = held - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        return True
