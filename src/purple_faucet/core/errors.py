"""Faucet error taxonomy.

Every failed engine operation raises a FaucetError subclass and leaves the
engine state untouched. The service layer turns these into result objects.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds reported by the faucet engine."""

    UNAUTHORIZED = "unauthorized"
    PAUSED = "paused"
    ALREADY_PAUSED = "already_paused"
    NOT_PAUSED = "not_paused"
    RECIPIENT_IS_CONTRACT = "recipient_is_contract"
    RECIPIENT_ALREADY_FUNDED = "recipient_already_funded"
    RECIPIENT_LOCKED = "recipient_locked"
    INSUFFICIENT_POOL_BALANCE = "insufficient_pool_balance"
    OWNER_BALANCE_SUFFICIENT = "owner_balance_sufficient"
    INVALID_ADDRESS = "invalid_address"
    INVALID_AMOUNT = "invalid_amount"
    TRANSFER_FAILED = "transfer_failed"


class FaucetError(Exception):
    """Base class for faucet operation failures.

    Parameters
    ----------
    message : str
        Human readable description of the failure.
    """

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(FaucetError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, caller: str | None):
        super().__init__(f"Caller is not the owner: {caller}")
        self.caller = caller


class Paused(FaucetError):
    kind = ErrorKind.PAUSED

    def __init__(self):
        super().__init__("Faucet withdrawals are paused")


class AlreadyPaused(FaucetError):
    kind = ErrorKind.ALREADY_PAUSED

    def __init__(self):
        super().__init__("Faucet withdrawals are already paused")


class NotPaused(FaucetError):
    kind = ErrorKind.NOT_PAUSED

    def __init__(self):
        super().__init__("Faucet withdrawals are not paused")


class RecipientIsContract(FaucetError):
    kind = ErrorKind.RECIPIENT_IS_CONTRACT

    def __init__(self, recipient: str):
        super().__init__(f"Recipient is a contract: {recipient}")
        self.recipient = recipient


class RecipientAlreadyFunded(FaucetError):
    kind = ErrorKind.RECIPIENT_ALREADY_FUNDED

    def __init__(self, recipient: str, balance: int, payout_amount: int):
        super().__init__(
            f"Recipient {recipient} holds {balance} wei, "
            f"not less than the payout amount of {payout_amount} wei"
        )
        self.recipient = recipient
        self.balance = balance


class RecipientLocked(FaucetError):
    kind = ErrorKind.RECIPIENT_LOCKED

    def __init__(self, recipient: str, unlocks_at: int, remaining: int):
        super().__init__(f"Recipient {recipient} is locked for another {remaining} seconds")
        self.recipient = recipient
        self.unlocks_at = unlocks_at
        self.remaining = remaining


class InsufficientPoolBalance(FaucetError):
    kind = ErrorKind.INSUFFICIENT_POOL_BALANCE

    def __init__(self, pool_balance: int, required: int):
        super().__init__(f"Faucet has insufficient balance: {pool_balance} < {required} wei")
        self.pool_balance = pool_balance
        self.required = required


class OwnerBalanceSufficient(FaucetError):
    kind = ErrorKind.OWNER_BALANCE_SUFFICIENT

    def __init__(self, owner: str, balance: int, threshold: int):
        super().__init__(
            f"Owner {owner} has enough balance for transaction fees: "
            f"{balance} >= {threshold} wei"
        )
        self.owner = owner
        self.balance = balance


class InvalidAddress(FaucetError):
    kind = ErrorKind.INVALID_ADDRESS

    def __init__(self, address: object):
        super().__init__(f"Invalid address format: {address}")
        self.address = address


class InvalidAmount(FaucetError):
    kind = ErrorKind.INVALID_AMOUNT

    def __init__(self, amount: object):
        super().__init__(f"Amount must be a non-negative integer: {amount!r}")
        self.amount = amount


class TransferFailed(FaucetError):
    """Raised by a ledger or token when value could not be delivered."""

    kind = ErrorKind.TRANSFER_FAILED

    def __init__(self, to: str, amount: int, reason: str):
        super().__init__(f"Transfer of {amount} to {to} failed: {reason}")
        self.to = to
        self.amount = amount
        self.reason = reason


class TransferPending(Exception):
    """Raised by a ledger when a transfer was broadcast but not confirmed in time.

    The transaction may still be mined, so the value counts as spent. This is
    not a FaucetError: the engine commits the operation and reports it as
    unconfirmed.

    Parameters
    ----------
    to : str
        Recipient of the transfer.
    amount : int
        Value of the transfer.
    reference : str
        Transaction hash of the broadcast transfer.
    """

    def __init__(self, to: str, amount: int, reference: str):
        super().__init__(f"Transfer of {amount} to {to} submitted as {reference} but not confirmed")
        self.to = to
        self.amount = amount
        self.reference = reference
