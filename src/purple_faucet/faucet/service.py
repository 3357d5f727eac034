"""Faucet Service.

Wraps the distribution engine for the CLI and HTTP API:
- Turns engine errors into FaucetResult values
- Records metrics and structured logs for every operation
- Reloads and persists the engine snapshot under the state-file lock
"""

import logging
import time
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from web3 import Web3

from purple_faucet.blockchain.ledger import TokenContract
from purple_faucet.core.errors import ErrorKind, FaucetError
from purple_faucet.observability.health import CheckResult, HealthCheck, HealthStatus
from purple_faucet.observability.metrics import (
    FUNDED,
    OWNER_TOP_UPS,
    PAID_OUT,
    PAUSED,
    POOL_BALANCE,
    REQUEST_DURATION,
    REQUESTS,
)

from .engine import FaucetEngine, Transfer
from .events import FaucetEvent, FaucetFunded, FaucetPayout
from .state import FaucetStats, StateStore

logger = logging.getLogger(__name__)

SUCCESS = "success"


def format_ether(wei: int) -> str:
    """Render a wei amount in ether units without trailing zeros."""
    ether = Decimal(str(Web3.from_wei(wei, "ether")))
    return f"{ether.normalize():f}"


class FaucetOperation(str, Enum):
    """Operations exposed by the faucet service."""

    PAYOUT = "payout"
    VALIDATE_PAYOUT = "validate_payout"
    RECEIVE_FUNDS = "receive_funds"
    FUND_OWNER = "fund_owner"
    WITHDRAW_TOKEN = "withdraw_token"
    PAUSE = "pause"
    RESUME = "resume"
    SET_PAYOUT_AMOUNT = "set_payout_amount"
    SET_LOCK_DURATION = "set_lock_duration"


@dataclass
class FaucetResult:
    """Outcome of a faucet operation.

    ``status`` is ``"success"`` or the ErrorKind value of the failure.
    """

    success: bool
    operation: FaucetOperation
    status: str
    tx_hash: str | None
    amount: int
    message: str


@dataclass
class FaucetStatus:
    """Current faucet status."""

    healthy: bool
    paused: bool
    owner: str
    pool_balance: int
    payout_amount: int
    lock_duration: int
    stats: FaucetStats
    message: str


@dataclass
class RecipientStatus:
    """Lock information for one recipient."""

    address: str
    last_payout: int  # 0 if never paid
    unlocks_at: int  # 0 if never paid
    cooldown_seconds: int


class FaucetService:
    """Faucet service orchestrating the engine, metrics and state store.

    Engine calls never await, so each operation runs to completion on the
    event loop before another one starts. With a store, every operation holds
    the store lock and reloads the stored snapshot first, so the service and
    CLI invocations sharing one state file see each other's changes.

    Parameters
    ----------
    engine : FaucetEngine
        The distribution engine.
    store : StateStore | None
        Where to persist snapshots; None keeps state in memory only.
    """

    def __init__(self, engine: FaucetEngine, store: StateStore | None = None):
        self._engine = engine
        self._store = store
        self._running = False
        self._save_error: str | None = None
        engine.events.subscribe(self._on_event)

    @property
    def engine(self) -> FaucetEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the faucet service.

        Loads the latest stored snapshot and publishes the pool gauges.
        """
        if self._running:
            logger.warning("Faucet service already running")
            return
        with self._locked():
            self._reload()
        self._refresh_gauges()
        self._running = True
        logger.info(
            "Faucet service started",
            extra={"owner": self._engine.owner, "pool_balance": self._engine.get_pool_balance()},
        )

    async def stop(self) -> None:
        """Stop the faucet service."""
        if not self._running:
            return
        self._running = False
        logger.info("Faucet service stopped")

    def _on_event(self, event: FaucetEvent) -> None:
        if isinstance(event, FaucetPayout):
            PAID_OUT.inc(event.amount)
        elif isinstance(event, FaucetFunded):
            FUNDED.inc(event.amount)

    def _refresh_gauges(self) -> None:
        POOL_BALANCE.set(self._engine.get_pool_balance())
        PAUSED.set(1 if self._engine.is_paused() else 0)

    def _locked(self) -> AbstractContextManager:
        if self._store is None:
            return nullcontext()
        return self._store.locked()

    def _reload(self) -> None:
        """Replace the engine state with the stored snapshot, if any.

        After a failed save the in-memory state is newer than the file and
        is kept until a later save succeeds.
        """
        if self._store is None or self._save_error is not None:
            return
        snapshot = self._store.load()
        if snapshot is not None:
            self._engine.restore(snapshot)

    def _persist(self) -> str | None:
        """Save the engine snapshot.

        Returns
        -------
        str | None
            A warning when the save failed, None otherwise.
        """
        try:
            self._store.save(self._engine.snapshot())
        except OSError as e:
            self._save_error = str(e)
            logger.error(
                "Faucet state not saved",
                extra={"path": str(self._store.path), "error": str(e)},
                exc_info=True,
            )
            return f"state not saved: {e}"
        self._save_error = None
        return None

    def _run(
        self,
        operation: FaucetOperation,
        action: Callable[[], tuple[str | None, int, str]],
        amount: int = 0,
        persist: bool = True,
    ) -> FaucetResult:
        """Execute one engine action and describe its outcome.

        ``action`` returns (tx_hash, amount, message) on success. Once the
        action has succeeded the result is a success even if saving the
        snapshot fails; the message then carries a warning.
        """
        started = time.perf_counter()
        try:
            with self._locked():
                self._reload()
                tx_hash, amount, message = action()
                if persist and self._store is not None:
                    warning = self._persist()
                    if warning:
                        message = f"{message} (warning: {warning})"
        except FaucetError as e:
            logger.warning(
                "Faucet operation rejected",
                extra={"operation": operation.value, "status": e.kind.value, "reason": e.message},
            )
            result = FaucetResult(
                success=False,
                operation=operation,
                status=e.kind.value,
                tx_hash=None,
                amount=amount,
                message=e.message,
            )
        except Exception as e:
            logger.error(
                "Faucet operation failed",
                extra={"operation": operation.value, "error": str(e)},
                exc_info=True,
            )
            result = FaucetResult(
                success=False,
                operation=operation,
                status=ErrorKind.TRANSFER_FAILED.value,
                tx_hash=None,
                amount=amount,
                message=f"Transaction failed: {e}",
            )
        else:
            result = FaucetResult(
                success=True,
                operation=operation,
                status=SUCCESS,
                tx_hash=tx_hash,
                amount=amount,
                message=message,
            )
        finally:
            REQUEST_DURATION.labels(operation=operation.value).observe(
                time.perf_counter() - started
            )

        REQUESTS.labels(operation=operation.value, status=result.status).inc()
        self._refresh_gauges()
        return result

    async def handle_payout(self, caller: str | None, address: str) -> FaucetResult:
        """Send one payout to an address.

        Parameters
        ----------
        caller : str | None
            Account requesting the payout; must be the owner.
        address : str
            Recipient address.

        Returns
        -------
        FaucetResult
            Result of the request.
        """

        def action():
            transfer = self._engine.payout(caller, address)
            return (
                transfer.reference,
                transfer.amount,
                _sent_message(f"Sent {format_ether(transfer.amount)} to {transfer.to}", transfer),
            )

        return self._run(FaucetOperation.PAYOUT, action, self._engine.get_payout_amount())

    async def validate_payout(self, caller: str | None, address: str) -> FaucetResult:
        """Check whether a payout would succeed, without sending it."""
        payout_amount = self._engine.get_payout_amount()

        def action():
            self._engine.validate_payout(caller, address)
            amount = self._engine.get_payout_amount()
            return None, amount, f"Would send {format_ether(amount)} to {address}"

        return self._run(FaucetOperation.VALIDATE_PAYOUT, action, payout_amount, persist=False)

    async def handle_receive_funds(self, sender: str, amount: int) -> FaucetResult:
        """Record currency received into the pool.

        Parameters
        ----------
        sender : str
            Account the funds came from.
        amount : int
            Wei received.

        Returns
        -------
        FaucetResult
            Result of the request.
        """

        def action():
            self._engine.receive_funds(sender, amount)
            return None, amount, f"Received {format_ether(amount)} from {sender}"

        return self._run(FaucetOperation.RECEIVE_FUNDS, action, amount)

    async def handle_fund_owner(self, caller: str | None) -> FaucetResult:
        """Top up the owner's fee balance from the pool."""

        def action():
            transfer = self._engine.fund_owner(caller)
            OWNER_TOP_UPS.inc()
            return (
                transfer.reference,
                transfer.amount,
                _sent_message(
                    f"Sent {format_ether(transfer.amount)} to owner {transfer.to}", transfer
                ),
            )

        return self._run(FaucetOperation.FUND_OWNER, action, self._engine.owner_top_up)

    async def handle_withdraw_token(
        self, caller: str | None, token: TokenContract
    ) -> FaucetResult:
        """Sweep the faucet's balance of a token to the owner.

        Parameters
        ----------
        caller : str | None
            Account requesting the sweep; must be the owner.
        token : TokenContract
            Token to sweep.

        Returns
        -------
        FaucetResult
            Result of the request; ``amount`` is in token base units.
        """

        def action():
            amount = self._engine.withdraw_token(caller, token)
            return None, amount, f"Withdrew {amount} units of token {token.address} to owner"

        return self._run(FaucetOperation.WITHDRAW_TOKEN, action)

    async def pause(self, caller: str | None) -> FaucetResult:
        """Pause payouts.

        Parameters
        ----------
        caller : str | None
            Account requesting the pause; must be the owner.

        Returns
        -------
        FaucetResult
            Result of the request; ``already_paused`` if payouts were paused.
        """

        def action():
            self._engine.pause_withdrawals(caller)
            return None, 0, "Faucet withdrawals paused"

        return self._run(FaucetOperation.PAUSE, action)

    async def resume(self, caller: str | None) -> FaucetResult:
        """Resume payouts.

        Parameters
        ----------
        caller : str | None
            Account requesting the resume; must be the owner.

        Returns
        -------
        FaucetResult
            Result of the request; ``not_paused`` if payouts were running.
        """

        def action():
            self._engine.resume_withdrawals(caller)
            return None, 0, "Faucet withdrawals resumed"

        return self._run(FaucetOperation.RESUME, action)

    async def set_payout_amount(self, caller: str | None, amount: int) -> FaucetResult:
        """Change the wei sent per payout.

        Parameters
        ----------
        caller : str | None
            Account requesting the change; must be the owner.
        amount : int
            New payout amount in wei.

        Returns
        -------
        FaucetResult
            Result of the request.
        """

        def action():
            self._engine.set_payout_amount(caller, amount)
            return None, amount, f"Payout amount set to {format_ether(amount)}"

        return self._run(FaucetOperation.SET_PAYOUT_AMOUNT, action, amount)

    async def set_lock_duration(self, caller: str | None, seconds: int) -> FaucetResult:
        """Change the seconds between payouts to one recipient.

        Parameters
        ----------
        caller : str | None
            Account requesting the change; must be the owner.
        seconds : int
            New lock duration.

        Returns
        -------
        FaucetResult
            Result of the request.
        """

        def action():
            self._engine.set_lock_duration(caller, seconds)
            return None, 0, f"Lock duration set to {seconds} seconds"

        return self._run(FaucetOperation.SET_LOCK_DURATION, action)

    async def get_status(self) -> FaucetStatus:
        """Get current faucet status.

        The faucet is unhealthy while its state cannot be saved, while
        paused, or while the pool cannot cover a single payout.
        """
        with self._locked():
            self._reload()

        engine = self._engine
        paused = engine.is_paused()
        pool_balance = engine.get_pool_balance()
        payout_amount = engine.get_payout_amount()

        healthy = True
        message = "Faucet operational"
        if self._save_error is not None:
            healthy = False
            message = f"Faucet state could not be saved: {self._save_error}"
        elif paused:
            healthy = False
            message = "Faucet withdrawals are paused"
        elif pool_balance < payout_amount:
            healthy = False
            message = "Pool balance is below one payout"

        return FaucetStatus(
            healthy=healthy,
            paused=paused,
            owner=engine.owner,
            pool_balance=pool_balance,
            payout_amount=payout_amount,
            lock_duration=engine.get_lock_duration(),
            stats=engine.get_stats(),
            message=message,
        )

    async def get_recipient_status(self, address: str) -> RecipientStatus:
        """Get lock information for a recipient.

        Raises
        ------
        InvalidAddress
            If the address is malformed.
        """
        with self._locked():
            self._reload()

        last_payout = self._engine.get_address_lock_time(address)
        unlocks_at = self._engine.get_recipient_lock_expiry(address)
        cooldown = max(0, unlocks_at - self._engine.now()) if unlocks_at else 0
        return RecipientStatus(
            address=address,
            last_payout=last_payout,
            unlocks_at=unlocks_at,
            cooldown_seconds=cooldown,
        )


def _sent_message(message: str, transfer: Transfer) -> str:
    if transfer.confirmed:
        return message
    return f"{message} (submitted as {transfer.reference}, not yet confirmed)"


class FaucetHealthCheck(HealthCheck):
    """Readiness check failing while the faucet cannot pay out.

    Parameters
    ----------
    service : FaucetService
        Service whose status is reported.
    """

    def __init__(self, service: FaucetService):
        self._service = service

    @property
    def name(self) -> str:
        return "faucet"

    async def check(self) -> CheckResult:
        """Report NOT_READY with the status message while unhealthy."""
        status = await self._service.get_status()
        if status.healthy:
            return CheckResult(name=self.name, status=HealthStatus.OK)
        return CheckResult(name=self.name, status=HealthStatus.NOT_READY, message=status.message)
