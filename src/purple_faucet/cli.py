"""CLI subcommands for faucet operations.

Provides command-line interface for:
- Wallet operations (address, balance)
- Faucet operations (status, lock, payout, fund, fund-owner, withdraw-token,
  pause, resume, set-payout-amount, set-lock-duration)

Faucet commands act as the configured owner (PURPLE_OWNER_ADDRESS) while the
wallet holds the pool. They share PURPLE_STATE_FILE with a running service
through the state-file lock.
"""

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation

from web3 import Web3

from purple_faucet.blockchain.client import Web3Ledger
from purple_faucet.blockchain.ledger import Ledger, normalize_address
from purple_faucet.config import FaucetConfig
from purple_faucet.core.wallet import EnvironmentWallet
from purple_faucet.faucet import (
    FaucetEngine,
    FaucetResult,
    FaucetService,
    Ownable,
    Pausable,
    StateStore,
)
from purple_faucet.faucet.service import format_ether

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="purple-faucet",
        description="Purple Faucet - custodial native-currency faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global flags
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without executing",
    )
    parser.add_argument(
        "--generate-wallet",
        metavar="FILE",
        help="Generate a new wallet and save private key to FILE, then exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Wallet subcommand
    wallet_parser = subparsers.add_parser("wallet", help="Wallet operations")
    wallet_sub = wallet_parser.add_subparsers(dest="wallet_command")

    wallet_sub.add_parser("address", help="Show wallet address")
    wallet_sub.add_parser("balance", help="Show wallet native balance")

    # Faucet subcommand
    faucet_parser = subparsers.add_parser("faucet", help="Faucet operations")
    faucet_sub = faucet_parser.add_subparsers(dest="faucet_command")

    faucet_sub.add_parser("status", help="Show faucet pool, policy and statistics")

    lock_parser = faucet_sub.add_parser("lock", help="Show a recipient's payout lock")
    lock_parser.add_argument("address", type=str, help="Recipient address")

    payout_parser = faucet_sub.add_parser("payout", help="Send one payout to address")
    payout_parser.add_argument("address", type=str, help="Recipient address")

    fund_parser = faucet_sub.add_parser("fund", help="Record funds received into the pool")
    fund_parser.add_argument("amount", type=str, help="Amount in ether units")
    fund_parser.add_argument(
        "--sender", type=str, default=None, help="Funding account (default: owner address)"
    )

    faucet_sub.add_parser("fund-owner", help="Top up the owner's fee balance from the pool")

    withdraw_parser = faucet_sub.add_parser(
        "withdraw-token", help="Sweep the faucet's ERC20 balance to the owner"
    )
    withdraw_parser.add_argument("token", type=str, help="Token contract address")

    faucet_sub.add_parser("pause", help="Pause payouts")
    faucet_sub.add_parser("resume", help="Resume payouts")

    amount_parser = faucet_sub.add_parser("set-payout-amount", help="Change the payout amount")
    amount_parser.add_argument("amount", type=str, help="Amount in ether units")

    duration_parser = faucet_sub.add_parser(
        "set-lock-duration", help="Change the seconds between payouts to one recipient"
    )
    duration_parser.add_argument("seconds", type=int, help="Lock duration in seconds")

    # Run subcommand (start service)
    subparsers.add_parser("run", help="Start the faucet service")

    return parser


def build_engine(
    config: FaucetConfig,
    address: str,
    ledger: Ledger,
    store: StateStore | None = None,
) -> FaucetEngine:
    """Resume the engine from the state file, or start a fresh one.

    ``address`` is the faucet wallet holding the pool. A fresh engine is owned
    by PURPLE_OWNER_ADDRESS and takes its payout policy from the
    configuration; a resumed engine keeps the persisted owner and policy.

    Raises
    ------
    ValueError
        If a fresh engine has no owner configured, or the owner is the
        faucet wallet.
    """
    policy = {
        "owner_min_balance": config.owner_min_balance_wei,
        "owner_top_up": config.owner_top_up_wei,
    }
    snapshot = store.load() if store is not None else None
    if snapshot is not None:
        logger.info("Faucet state loaded", extra={"path": str(store.path)})
        return FaucetEngine.from_snapshot(snapshot, address, ledger, **policy)

    if config.owner_address is None:
        raise ValueError("No owner configured. Set PURPLE_OWNER_ADDRESS")

    return FaucetEngine(
        address,
        ledger,
        Ownable(config.owner_address),
        Pausable(),
        payout_amount=config.payout_amount_wei,
        lock_duration=config.lock_duration,
        **policy,
    )


def parse_ether(amount_str: str) -> int:
    """Convert an ether amount string to wei.

    Raises
    ------
    InvalidOperation
        If the string is not a positive decimal representable in wei.
    """
    amount = Decimal(amount_str)
    if not amount.is_finite() or amount <= 0:
        raise InvalidOperation(amount_str)
    wei = Web3.to_wei(amount, "ether")
    if Decimal(wei) != amount * 10**18:
        raise InvalidOperation(amount_str)
    return wei


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: FaucetConfig, dry_run: bool = False, json_output: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.json_output = json_output
        self._wallet: EnvironmentWallet | None = None
        self._ledger: Web3Ledger | None = None
        self._store: StateStore | None = None
        self._service: FaucetService | None = None

    @property
    def wallet(self) -> EnvironmentWallet:
        """Get wallet (lazy loaded)."""
        if self._wallet is None:
            self._wallet = EnvironmentWallet.from_config(self.config)
        return self._wallet

    @property
    def ledger(self) -> Web3Ledger:
        """Get RPC ledger (lazy loaded)."""
        if self._ledger is None:
            self._ledger = Web3Ledger(
                self.config.rpc_endpoint, self.wallet, tx_timeout=self.config.tx_timeout
            )
        return self._ledger

    @property
    def caller(self) -> str:
        """Owner account the CLI acts as."""
        if self.config.owner_address is None:
            raise ValueError("No owner configured. Set PURPLE_OWNER_ADDRESS")
        return self.config.owner_address

    @property
    def store(self) -> StateStore | None:
        """Get state store, None when PURPLE_STATE_FILE is unset."""
        if self._store is None and self.config.state_file:
            self._store = StateStore(self.config.state_file)
        return self._store

    @property
    def service(self) -> FaucetService:
        """Get faucet service over the persisted engine (lazy loaded)."""
        if self._service is None:
            if self.store is None:
                logger.warning("PURPLE_STATE_FILE not set; faucet state will not be saved")
            engine = build_engine(self.config, self.wallet.address, self.ledger, self.store)
            self._service = FaucetService(engine, self.store)
        return self._service

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:
            # Convert Decimal to string for JSON serialization
            def decimal_default(obj):
                if isinstance(obj, Decimal):
                    return str(obj)
                raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

            print(json.dumps(data, default=decimal_default, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            else:
                print(f"{prefix}{key}: {value}")

    def output_result(self, result: FaucetResult) -> int:
        """Output a service result and return its exit code."""
        data = {
            "success": result.success,
            "action": result.operation.value,
            "status": result.status,
            "message": result.message,
        }
        if result.tx_hash:
            data["tx_hash"] = result.tx_hash
        self.output(data)
        return 0 if result.success else 1

    def output_dry_run(self, action: str, message: str, **details) -> int:
        self.output({"dry_run": True, "action": action, **details, "message": message})
        return 0


# Wallet commands


def cmd_wallet_address(ctx: CLIContext) -> int:
    """Show wallet address."""
    try:
        address = ctx.wallet.address
        ctx.output({"address": address})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_wallet_balance(ctx: CLIContext) -> int:
    """Show wallet native balance."""
    try:
        if not ctx.ledger.connected:
            ctx.output({"error": "Not connected to RPC endpoint"})
            return 1

        ctx.output(
            {
                "address": ctx.wallet.address,
                "balance": ctx.ledger.balance_in_ether(ctx.wallet.address),
                "rpc": ctx.config.rpc_endpoint,
                "chain_id": ctx.ledger.chain_id,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Faucet commands


def cmd_faucet_status(ctx: CLIContext) -> int:
    """Show faucet pool, policy and statistics."""
    try:
        status = asyncio.run(ctx.service.get_status())
        ctx.output(
            {
                "healthy": status.healthy,
                "paused": status.paused,
                "owner": status.owner,
                "pool_balance": format_ether(status.pool_balance),
                "payout_amount": format_ether(status.payout_amount),
                "lock_duration": status.lock_duration,
                "stats": {
                    "payout_count": status.stats.payout_count,
                    "total_paid_out": format_ether(status.stats.total_paid_out),
                    "total_funded": format_ether(status.stats.total_funded),
                },
                "message": status.message,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_lock(ctx: CLIContext, address: str) -> int:
    """Show a recipient's payout lock."""
    try:
        recipient = asyncio.run(ctx.service.get_recipient_status(address))
        ctx.output(
            {
                "address": recipient.address,
                "last_payout": recipient.last_payout,
                "unlocks_at": recipient.unlocks_at,
                "cooldown_seconds": recipient.cooldown_seconds,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_payout(ctx: CLIContext, address: str) -> int:
    """Send one payout to address."""
    try:
        caller = ctx.caller
        if ctx.dry_run:
            result = asyncio.run(ctx.service.validate_payout(caller, address))
            if not result.success:
                return ctx.output_result(result)
            return ctx.output_dry_run(
                "payout", result.message, to=address, amount=format_ether(result.amount)
            )

        return ctx.output_result(asyncio.run(ctx.service.handle_payout(caller, address)))
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_fund(ctx: CLIContext, amount_str: str, sender: str | None) -> int:
    """Record funds received into the pool."""
    try:
        amount = parse_ether(amount_str)
        sender = normalize_address(sender) if sender else ctx.caller

        if ctx.dry_run:
            return ctx.output_dry_run(
                "receive_funds",
                f"Would record {format_ether(amount)} from {sender}",
                sender=sender,
                amount=format_ether(amount),
            )

        return ctx.output_result(asyncio.run(ctx.service.handle_receive_funds(sender, amount)))
    except InvalidOperation:
        ctx.output({"error": f"Invalid amount: {amount_str}"})
        return 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_fund_owner(ctx: CLIContext) -> int:
    """Top up the owner's fee balance from the pool."""
    try:
        if ctx.dry_run:
            engine = ctx.service.engine
            return ctx.output_dry_run(
                "fund_owner",
                f"Would send {format_ether(engine.owner_top_up)} to owner {engine.owner} "
                f"if its balance is below {format_ether(engine.owner_min_balance)}",
            )

        return ctx.output_result(asyncio.run(ctx.service.handle_fund_owner(ctx.caller)))
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_withdraw_token(ctx: CLIContext, token_address: str) -> int:
    """Sweep the faucet's ERC20 balance to the owner."""
    try:
        token = ctx.ledger.token(normalize_address(token_address))
        if ctx.dry_run:
            balance = token.balance_of(ctx.service.engine.address)
            return ctx.output_dry_run(
                "withdraw_token",
                f"Would withdraw {balance} units of token {token.address} to owner",
                token=token.address,
                amount=balance,
            )

        return ctx.output_result(
            asyncio.run(ctx.service.handle_withdraw_token(ctx.caller, token))
        )
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_pause(ctx: CLIContext) -> int:
    """Pause payouts."""
    try:
        if ctx.dry_run:
            return ctx.output_dry_run("pause", "Would pause faucet withdrawals")
        return ctx.output_result(asyncio.run(ctx.service.pause(ctx.caller)))
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_resume(ctx: CLIContext) -> int:
    """Resume payouts."""
    try:
        if ctx.dry_run:
            return ctx.output_dry_run("resume", "Would resume faucet withdrawals")
        return ctx.output_result(asyncio.run(ctx.service.resume(ctx.caller)))
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_set_payout_amount(ctx: CLIContext, amount_str: str) -> int:
    """Change the payout amount."""
    try:
        amount = parse_ether(amount_str)
        if ctx.dry_run:
            return ctx.output_dry_run(
                "set_payout_amount",
                f"Would set payout amount to {format_ether(amount)}",
                amount=format_ether(amount),
            )
        return ctx.output_result(
            asyncio.run(ctx.service.set_payout_amount(ctx.caller, amount))
        )
    except InvalidOperation:
        ctx.output({"error": f"Invalid amount: {amount_str}"})
        return 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_faucet_set_lock_duration(ctx: CLIContext, seconds: int) -> int:
    """Change the lock duration."""
    try:
        if ctx.dry_run:
            return ctx.output_dry_run(
                "set_lock_duration",
                f"Would set lock duration to {seconds} seconds",
                seconds=seconds,
            )
        return ctx.output_result(
            asyncio.run(ctx.service.set_lock_duration(ctx.caller, seconds))
        )
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help (no CLI command specified).
    """
    # Load config
    try:
        config = FaucetConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, dry_run=args.dry_run, json_output=args.json)

    # Route to appropriate command
    if args.command == "wallet":
        if args.wallet_command == "address":
            return cmd_wallet_address(ctx)
        elif args.wallet_command == "balance":
            return cmd_wallet_balance(ctx)
        else:
            print("Usage: purple-faucet wallet [address|balance]", file=sys.stderr)
            return 1

    elif args.command == "faucet":
        if args.faucet_command == "status":
            return cmd_faucet_status(ctx)
        elif args.faucet_command == "lock":
            return cmd_faucet_lock(ctx, args.address)
        elif args.faucet_command == "payout":
            return cmd_faucet_payout(ctx, args.address)
        elif args.faucet_command == "fund":
            return cmd_faucet_fund(ctx, args.amount, args.sender)
        elif args.faucet_command == "fund-owner":
            return cmd_faucet_fund_owner(ctx)
        elif args.faucet_command == "withdraw-token":
            return cmd_faucet_withdraw_token(ctx, args.token)
        elif args.faucet_command == "pause":
            return cmd_faucet_pause(ctx)
        elif args.faucet_command == "resume":
            return cmd_faucet_resume(ctx)
        elif args.faucet_command == "set-payout-amount":
            return cmd_faucet_set_payout_amount(ctx, args.amount)
        elif args.faucet_command == "set-lock-duration":
            return cmd_faucet_set_lock_duration(ctx, args.seconds)
        else:
            print(
                "Usage: purple-faucet faucet [status|lock|payout|fund|fund-owner|"
                "withdraw-token|pause|resume|set-payout-amount|set-lock-duration]",
                file=sys.stderr,
            )
            return 1

    else:
        # No subcommand - show help
        return -1
