"""Faucet distribution engine.

Holds the native-currency pool and releases fixed-size payouts:
- Owner-only payouts, gated by the pause switch
- Recipients must be plain accounts holding less than one payout
- Per-recipient time lock between payouts
- Owner fee top-ups and ERC20 sweeps from the faucet's custody

Every operation either commits all of its state changes or raises a
FaucetError and commits none. Value transfers happen before the commit, so a
failed transfer leaves the pool untouched. A transfer that was broadcast but
not confirmed in time is committed and reported as unconfirmed, since it may
still be mined.
"""

import copy
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from purple_faucet.blockchain.ledger import Ledger, TokenContract, normalize_address
from purple_faucet.core.errors import (
    AlreadyPaused,
    InsufficientPoolBalance,
    InvalidAmount,
    NotPaused,
    OwnerBalanceSufficient,
    Paused,
    RecipientAlreadyFunded,
    RecipientIsContract,
    RecipientLocked,
    TransferFailed,
    TransferPending,
    Unauthorized,
)

from .events import EventLog, FaucetFunded, FaucetPayout
from .guards import Ownable, OwnershipGuard, Pausable, PauseSwitch
from .state import FaucetSnapshot, FaucetState, FaucetStats

logger = logging.getLogger(__name__)

WEI_PER_ETHER = 10**18

DEFAULT_PAYOUT_AMOUNT = WEI_PER_ETHER // 100  # 0.01
DEFAULT_LOCK_DURATION = 24 * 60 * 60
DEFAULT_OWNER_MIN_BALANCE = 2 * WEI_PER_ETHER
DEFAULT_OWNER_TOP_UP = WEI_PER_ETHER // 2  # 0.5


def _system_clock() -> int:
    return int(time.time())


def _uint(value: int) -> int:
    """Reject values an unsigned integer cannot hold."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidAmount(value)
    return value


@dataclass(frozen=True)
class Transfer:
    """Value that left the faucet's custody.

    ``confirmed`` is False when the transfer was broadcast but its receipt did
    not arrive in time.
    """

    to: str
    amount: int
    reference: str
    confirmed: bool = True


class FaucetEngine:
    """Custodial faucet state machine.

    Parameters
    ----------
    address : str
        The faucet's own account; token sweeps read its balance.
    ledger : Ledger
        Balance, code and native-transfer primitives.
    ownership : OwnershipGuard
        Decides who may call owner-only operations.
    pause : PauseSwitch
        Paused flag gating payouts.
    payout_amount : int
        Initial wei per payout.
    lock_duration : int
        Initial seconds between payouts to one recipient.
    owner_min_balance : int
        Owner balance (wei) at or above which fee top-ups are refused.
    owner_top_up : int
        Wei sent to the owner by a fee top-up. Must be below owner_min_balance.
    clock : Callable[[], int] | None
        Source of the current unix time, read once per operation.
    state : FaucetState | None
        Existing state to resume from; payout_amount and lock_duration are
        ignored when given.
    events : EventLog | None
        Event sink; a fresh log is created when omitted.
    """

    def __init__(
        self,
        address: str,
        ledger: Ledger,
        ownership: OwnershipGuard,
        pause: PauseSwitch,
        *,
        payout_amount: int = DEFAULT_PAYOUT_AMOUNT,
        lock_duration: int = DEFAULT_LOCK_DURATION,
        owner_min_balance: int = DEFAULT_OWNER_MIN_BALANCE,
        owner_top_up: int = DEFAULT_OWNER_TOP_UP,
        clock: Callable[[], int] | None = None,
        state: FaucetState | None = None,
        events: EventLog | None = None,
    ):
        if _uint(owner_top_up) >= _uint(owner_min_balance):
            raise ValueError(
                f"owner_top_up ({owner_top_up}) must be below "
                f"owner_min_balance ({owner_min_balance})"
            )

        self._address = normalize_address(address)
        if ownership.owner == self._address:
            raise ValueError(
                f"Owner {ownership.owner} must be a different account than the faucet"
            )
        self._ledger = ledger
        self._ownership = ownership
        self._pause = pause
        self._owner_min_balance = owner_min_balance
        self._owner_top_up = owner_top_up
        self._clock = clock or _system_clock
        self._events = events or EventLog()
        self._state = state or FaucetState(
            payout_amount=_uint(payout_amount),
            lock_duration=_uint(lock_duration),
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: FaucetSnapshot,
        address: str,
        ledger: Ledger,
        **kwargs,
    ) -> "FaucetEngine":
        """Rebuild an engine, with its owner and paused flag, from a snapshot."""
        return cls(
            address,
            ledger,
            Ownable(snapshot.owner),
            Pausable(snapshot.paused),
            state=copy.deepcopy(snapshot.state),
            **kwargs,
        )

    def snapshot(self) -> FaucetSnapshot:
        """Capture a detached copy of the engine state and guard flags."""
        return FaucetSnapshot(
            owner=self._ownership.owner,
            paused=self._pause.is_paused(),
            state=copy.deepcopy(self._state),
        )

    def restore(self, snapshot: FaucetSnapshot) -> None:
        """Replace the engine state and guard flags with a stored snapshot.

        Used to pick up changes another process saved to the same store.

        Raises
        ------
        ValueError
            If the snapshot names the faucet account as owner.
        """
        if normalize_address(snapshot.owner) == self._address:
            raise ValueError(f"Owner {snapshot.owner} must be a different account than the faucet")
        if snapshot.owner != self._ownership.owner:
            self._ownership = Ownable(snapshot.owner)
        self._pause.set_paused(snapshot.paused)
        self._state = copy.deepcopy(snapshot.state)

    @property
    def address(self) -> str:
        return self._address

    @property
    def owner(self) -> str:
        return self._ownership.owner

    @property
    def ownership(self) -> OwnershipGuard:
        return self._ownership

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def owner_min_balance(self) -> int:
        return self._owner_min_balance

    @property
    def owner_top_up(self) -> int:
        return self._owner_top_up

    def is_paused(self) -> bool:
        return self._pause.is_paused()

    def now(self) -> int:
        """Current unix time as seen by the lock checks."""
        return self._clock()

    def _only_owner(self, caller: str | None) -> None:
        if not self._ownership.is_owner(caller):
            raise Unauthorized(caller)

    def _send(self, to: str, amount: int) -> tuple[str, bool]:
        """Send value through the ledger; returns (reference, confirmed)."""
        try:
            return self._ledger.send(to, amount), True
        except TransferPending as e:
            logger.warning(
                "Transfer submitted but not confirmed",
                extra={"to": to, "amount": amount, "reference": e.reference},
            )
            return e.reference, False

    # Funding

    def receive_funds(self, sender: str, amount: int) -> None:
        """Credit currency sent to the faucet by any account.

        Parameters
        ----------
        sender : str
            Account the funds came from.
        amount : int
            Wei received.
        """
        sender = normalize_address(sender)
        amount = _uint(amount)

        stats = self._state.stats
        self._state.pool_balance += amount
        self._state.stats = stats._replace(total_funded=stats.total_funded + amount)
        self._events.emit(FaucetFunded(sender=sender, amount=amount))

        logger.info(
            "Faucet funded",
            extra={"sender": sender, "amount": amount, "pool_balance": self._state.pool_balance},
        )

    # Configuration

    def set_payout_amount(self, caller: str | None, new_amount: int) -> None:
        """Change the wei sent per payout (owner only)."""
        self._only_owner(caller)
        new_amount = _uint(new_amount)

        previous, self._state.payout_amount = self._state.payout_amount, new_amount
        logger.info(
            "Payout amount changed",
            extra={"previous": previous, "payout_amount": new_amount},
        )

    def set_lock_duration(self, caller: str | None, new_seconds: int) -> None:
        """Change the seconds between payouts to one recipient (owner only)."""
        self._only_owner(caller)
        new_seconds = _uint(new_seconds)

        previous, self._state.lock_duration = self._state.lock_duration, new_seconds
        logger.info(
            "Lock duration changed",
            extra={"previous": previous, "lock_duration": new_seconds},
        )

    def get_payout_amount(self) -> int:
        return self._state.payout_amount

    def get_lock_duration(self) -> int:
        return self._state.lock_duration

    def get_pool_balance(self) -> int:
        return self._state.pool_balance

    def get_stats(self) -> FaucetStats:
        """Return (payout_count, total_paid_out, total_funded)."""
        return self._state.stats

    def get_address_lock_time(self, address: str) -> int:
        """Timestamp of the last payout to an address, 0 if never paid."""
        return self._state.locks.get(normalize_address(address), 0)

    def get_recipient_lock_expiry(self, address: str) -> int:
        """Timestamp from which an address may be paid again, 0 if never paid."""
        last = self._state.locks.get(normalize_address(address))
        if last is None:
            return 0
        return last + self._state.lock_duration

    # Payout

    def _check_payout(self, caller: str | None, recipient: str) -> tuple[str, int]:
        self._only_owner(caller)
        if self._pause.is_paused():
            raise Paused()

        recipient = normalize_address(recipient)
        if self._ledger.has_code(recipient):
            raise RecipientIsContract(recipient)

        amount = self._state.payout_amount
        balance = self._ledger.balance_of(recipient)
        if balance >= amount:
            raise RecipientAlreadyFunded(recipient, balance, amount)

        now = self._clock()
        last = self._state.locks.get(recipient)
        if last is not None:
            unlocks_at = last + self._state.lock_duration
            if now < unlocks_at:
                raise RecipientLocked(recipient, unlocks_at, unlocks_at - now)

        if self._state.pool_balance < amount:
            raise InsufficientPoolBalance(self._state.pool_balance, amount)

        return recipient, now

    def validate_payout(self, caller: str | None, recipient: str) -> None:
        """Run every payout check without moving funds.

        Raises
        ------
        FaucetError
            The first failing check, in payout order.
        """
        self._check_payout(caller, recipient)

    def payout(self, caller: str | None, recipient: str) -> Transfer:
        """Send one payout to a recipient (owner only).

        Checks run in order: owner, not paused, address format, no deployed
        code, recipient balance below the payout, lock expired, pool covers
        the payout. The first failure is raised.

        Parameters
        ----------
        caller : str | None
            Account invoking the payout.
        recipient : str
            Account receiving the payout.

        Returns
        -------
        Transfer
            The sent payout; ``confirmed`` is False when its receipt timed out.

        Raises
        ------
        FaucetError
            If a check fails or the transfer is rejected; state is unchanged.
        """
        recipient, now = self._check_payout(caller, recipient)
        amount = self._state.payout_amount

        reference, confirmed = self._send(recipient, amount)

        stats = self._state.stats
        self._state.pool_balance -= amount
        self._state.locks[recipient] = now
        self._state.stats = stats._replace(
            payout_count=stats.payout_count + 1,
            total_paid_out=stats.total_paid_out + amount,
        )
        self._events.emit(FaucetPayout(recipient=recipient, amount=amount))

        logger.info(
            "Faucet payout",
            extra={
                "recipient": recipient,
                "amount": amount,
                "reference": reference,
                "confirmed": confirmed,
                "pool_balance": self._state.pool_balance,
            },
        )
        return Transfer(to=recipient, amount=amount, reference=reference, confirmed=confirmed)

    # Owner maintenance

    def fund_owner(self, caller: str | None) -> Transfer:
        """Top up the owner's fee budget from the pool (owner only).

        Raises
        ------
        Unauthorized
            If the caller is not the owner.
        OwnerBalanceSufficient
            If the owner already holds owner_min_balance or more.
        InsufficientPoolBalance
            If the pool cannot cover owner_top_up.
        """
        self._only_owner(caller)
        owner = self._ownership.owner

        balance = self._ledger.balance_of(owner)
        if balance >= self._owner_min_balance:
            raise OwnerBalanceSufficient(owner, balance, self._owner_min_balance)

        amount = self._owner_top_up
        if self._state.pool_balance < amount:
            raise InsufficientPoolBalance(self._state.pool_balance, amount)

        reference, confirmed = self._send(owner, amount)
        self._state.pool_balance -= amount

        logger.info(
            "Owner fee balance topped up",
            extra={
                "owner": owner,
                "amount": amount,
                "reference": reference,
                "confirmed": confirmed,
            },
        )
        return Transfer(to=owner, amount=amount, reference=reference, confirmed=confirmed)

    def withdraw_token(self, caller: str | None, token: TokenContract) -> int:
        """Sweep the faucet's whole balance of a token to the owner (owner only).

        A zero balance still issues the transfer and succeeds.

        Returns
        -------
        int
            Token base units swept.

        Raises
        ------
        TransferFailed
            If the token reports the transfer as unsuccessful.
        """
        self._only_owner(caller)
        owner = self._ownership.owner

        amount = token.balance_of(self._address)
        try:
            delivered = token.transfer(owner, amount)
        except TransferPending as e:
            logger.warning(
                "Token withdrawal submitted but not confirmed",
                extra={"token_address": token.address, "amount": amount, "reference": e.reference},
            )
            return amount
        if not delivered:
            raise TransferFailed(owner, amount, f"token {token.address} rejected the transfer")

        logger.info(
            "Token balance withdrawn",
            extra={"token_address": token.address, "owner": owner, "amount": amount},
        )
        return amount

    # Pause control

    def pause_withdrawals(self, caller: str | None) -> None:
        """Stop payouts until resumed (owner only)."""
        self._only_owner(caller)
        if self._pause.is_paused():
            raise AlreadyPaused()
        self._pause.set_paused(True)
        logger.warning("Faucet withdrawals paused")

    def resume_withdrawals(self, caller: str | None) -> None:
        """Allow payouts again (owner only)."""
        self._only_owner(caller)
        if not self._pause.is_paused():
            raise NotPaused()
        self._pause.set_paused(False)
        logger.info("Faucet withdrawals resumed")
