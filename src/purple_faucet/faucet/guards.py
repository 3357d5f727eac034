"""Capability collaborators consulted by the faucet engine.

The engine does not own access control or the pause flag. It holds one
OwnershipGuard and one PauseSwitch and calls them at the top of every gated
operation.
"""

import logging
from abc import ABC, abstractmethod

from purple_faucet.blockchain.ledger import ZERO_ADDRESS, normalize_address, validate_address
from purple_faucet.core.errors import InvalidAddress, Unauthorized

logger = logging.getLogger(__name__)


class OwnershipGuard(ABC):
    """Answers whether a caller is the single privileged account."""

    @property
    @abstractmethod
    def owner(self) -> str:
        """Current owner address."""
        ...

    @abstractmethod
    def is_owner(self, caller: str | None) -> bool:
        """Check whether the caller is the current owner."""
        ...


class PauseSwitch(ABC):
    """Holds the paused flag that gates payouts."""

    @abstractmethod
    def is_paused(self) -> bool:
        """Check whether withdrawals are paused."""
        ...

    @abstractmethod
    def set_paused(self, paused: bool) -> None:
        """Set the paused flag."""
        ...


class Ownable(OwnershipGuard):
    """Single transferable owner.

    Parameters
    ----------
    owner : str
        Initial owner address.
    """

    def __init__(self, owner: str):
        self._owner = normalize_address(owner)

    @property
    def owner(self) -> str:
        return self._owner

    def is_owner(self, caller: str | None) -> bool:
        if caller is None or not validate_address(caller):
            return False
        return normalize_address(caller) == self._owner

    def transfer_ownership(self, caller: str | None, new_owner: str) -> None:
        """Hand ownership to another account.

        Parameters
        ----------
        caller : str | None
            Account requesting the transfer; must be the current owner.
        new_owner : str
            Account receiving ownership.

        Raises
        ------
        Unauthorized
            If the caller is not the current owner.
        InvalidAddress
            If the new owner is malformed or the zero address.
        """
        if not self.is_owner(caller):
            raise Unauthorized(caller)
        new_owner = normalize_address(new_owner)
        if new_owner == ZERO_ADDRESS:
            raise InvalidAddress(new_owner)

        previous, self._owner = self._owner, new_owner
        logger.info(
            "Ownership transferred",
            extra={"previous_owner": previous, "new_owner": new_owner},
        )


class Pausable(PauseSwitch):
    """In-process paused flag."""

    def __init__(self, paused: bool = False):
        self._paused = paused

    def is_paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused
