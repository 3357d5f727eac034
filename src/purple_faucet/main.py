#!/usr/bin/env python3
"""Purple Faucet.

Entry point for the faucet service and CLI.
"""

import asyncio
import logging
import os
import signal
import sys
import tempfile
from pathlib import Path

from eth_account import Account

from purple_faucet.api import FaucetAPI
from purple_faucet.blockchain.client import Web3Ledger
from purple_faucet.cli import build_engine, create_parser, run_cli
from purple_faucet.config import FaucetConfig
from purple_faucet.core.wallet import EnvironmentWallet
from purple_faucet.faucet import FaucetHealthCheck, FaucetService, StateStore
from purple_faucet.observability.health import HealthServer
from purple_faucet.observability.logging import configure_logging


def generate_wallet(output_path: str) -> None:
    """Generate a new wallet and save the private key to a file.

    Parameters
    ----------
    output_path : str
        Path to save the private key file.
    """
    account = Account.create()

    # Temp file in the target directory so the rename stays on one filesystem
    key_path = Path(output_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".purple-key-")
    fd_closed = False
    try:
        os.fchmod(fd, 0o600)
        os.write(fd, account.key.hex().encode())
        os.close(fd)
        fd_closed = True
        os.rename(temp_path, key_path)
    except Exception:
        if not fd_closed:
            os.close(fd)
        Path(temp_path).unlink(missing_ok=True)
        raise

    print(f"""
Wallet generated successfully!

  Address:     {account.address}
  Private Key: {key_path.absolute()}

Next steps:

  1. Fund this address with native currency on your target network

  2. Launch the faucet with this wallet and a separate owner account:

     export PURPLE_WALLET_PRIVATE_KEY_FILE={key_path.absolute()}
     export PURPLE_OWNER_ADDRESS=<OWNER_ADDRESS>
     export PURPLE_STATE_FILE=/var/lib/purple-faucet/state.json
     python -m purple_faucet run

  3. Record the funds you sent so the pool can pay them out. The CLI and the
     running service share the state file safely:

     python -m purple_faucet faucet fund <AMOUNT> --sender <YOUR_ADDRESS>

IMPORTANT: Keep this private key secure. Anyone with access can control the wallet.
""")


def parse_args():
    """Parse command line arguments."""
    return create_parser().parse_args()


async def run_service() -> None:
    """Run the faucet service (long-running mode).

    Wires up and starts all service components:
    - HealthServer for health checks and metrics
    - Wallet and RPC ledger (Web3Ledger)
    - FaucetEngine resumed from the state file when present
    - FaucetService and its HTTP API
    """
    config = FaucetConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("Purple faucet starting")
    logger.info("RPC endpoint: %s", config.rpc_endpoint)
    logger.info(
        "Payout policy: amount=%s ether, lock=%ss", config.payout_amount, config.lock_duration
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    try:
        wallet = EnvironmentWallet.from_config(config)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)
    logger.info("Wallet loaded: %s", wallet.address)

    ledger = Web3Ledger(config.rpc_endpoint, wallet, tx_timeout=config.tx_timeout)
    chain_id = ledger.chain_id
    if config.chain_id is not None and config.chain_id != chain_id:
        logger.error("Chain ID mismatch: configured %d, node reports %d", config.chain_id, chain_id)
        sys.exit(1)
    logger.info("Connected to chain ID: %d", chain_id)

    store = StateStore(config.state_file) if config.state_file else None
    if store is None:
        logger.warning("PURPLE_STATE_FILE not set; faucet state lives in memory only")

    try:
        engine = build_engine(config, wallet.address, ledger, store)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)
    faucet = FaucetService(engine, store)

    health_server = HealthServer(port=config.metrics_port)
    health_server.add_check(FaucetHealthCheck(faucet))
    if config.api_token is None:
        logger.warning("PURPLE_API_TOKEN not set; owner operations are disabled over HTTP")
    FaucetAPI(faucet, ledger.token, api_token=config.api_token).register(health_server.app)

    await faucet.start()
    await health_server.start()
    logger.info("HTTP server started on port %d", config.metrics_port)
    logger.info("Purple faucet ready")

    await shutdown_event.wait()

    logger.info("Purple faucet shutting down...")
    await health_server.stop()
    await faucet.stop()
    logger.info("Purple faucet shutdown complete")


def main() -> None:
    """Main entry point for the faucet.

    CLI commands drive their own event loop, so only the service runs under
    asyncio here.
    """
    args = parse_args()

    if args.generate_wallet:
        generate_wallet(args.generate_wallet)
        return

    # Handle CLI subcommands
    if args.command and args.command != "run":
        exit_code = run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        create_parser().print_help()
        sys.exit(0)

    # No subcommand or "run" - start service
    asyncio.run(run_service())


if __name__ == "__main__":
    main()
