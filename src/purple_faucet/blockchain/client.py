"""web3.py ledger and token bindings for on-chain faucet operation."""

import logging
from decimal import Decimal

from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.types import TxReceipt

from purple_faucet.core.errors import TransferFailed, TransferPending
from purple_faucet.core.wallet import WalletProvider

from .ledger import Ledger, TokenContract, normalize_address

logger = logging.getLogger(__name__)

# Gas for a plain value transfer
NATIVE_TRANSFER_GAS = 21000

# Generous ceiling for an ERC20 transfer
TOKEN_TRANSFER_GAS = 100000

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class Web3Ledger(Ledger):
    """Ledger backed by a JSON-RPC node, spending from the operator wallet.

    Parameters
    ----------
    rpc_endpoint : str
        The JSON-RPC endpoint URL.
    wallet : WalletProvider
        The wallet that holds the faucet's custody and signs transfers.
    tx_timeout : int
        Seconds to wait for a transfer to be mined.
    """

    def __init__(self, rpc_endpoint: str, wallet: WalletProvider, tx_timeout: int = 120):
        self._w3 = Web3(Web3.HTTPProvider(rpc_endpoint))
        self._wallet = wallet
        self._tx_timeout = tx_timeout

    @property
    def w3(self) -> Web3:
        return self._w3

    @property
    def connected(self) -> bool:
        """Check if connected to the RPC endpoint."""
        return self._w3.is_connected()

    @property
    def chain_id(self) -> int:
        """Chain ID reported by the node."""
        return self._w3.eth.chain_id

    @property
    def wallet_address(self) -> str:
        """Checksummed address of the faucet wallet."""
        return self._wallet.address

    def balance_of(self, address: str) -> int:
        return self._w3.eth.get_balance(normalize_address(address))

    def has_code(self, address: str) -> bool:
        return len(self._w3.eth.get_code(normalize_address(address))) > 0

    def balance_in_ether(self, address: str) -> Decimal:
        """Native balance of an address in ether units."""
        return Decimal(str(self._w3.from_wei(self.balance_of(address), "ether")))

    def send(self, to: str, amount: int) -> str:
        recipient = normalize_address(to)
        tx = {
            "to": recipient,
            "value": amount,
            "gas": NATIVE_TRANSFER_GAS,
            "gasPrice": self._w3.eth.gas_price,
            "nonce": self._w3.eth.get_transaction_count(self._wallet.address),
            "chainId": self._w3.eth.chain_id,
        }
        tx_hash = self._submit(tx)

        logger.info(
            "Native transfer submitted",
            extra={"tx_hash": tx_hash, "to": recipient, "amount": amount},
        )

        receipt = self._wait(tx_hash, recipient, amount)
        if receipt["status"] != 1:
            raise TransferFailed(recipient, amount, f"transaction {tx_hash} reverted")
        return tx_hash

    def token(self, address: str) -> "Web3Token":
        """Bind an ERC20 token held by the faucet wallet."""
        return Web3Token(self, address)

    def _submit(self, tx: dict) -> str:
        signed = self._wallet.get_account().sign_transaction(tx)
        return self._w3.eth.send_raw_transaction(signed.raw_transaction).hex()

    def _wait(self, tx_hash: str, to: str, amount: int) -> TxReceipt:
        try:
            return self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._tx_timeout)
        except TimeExhausted as e:
            logger.warning(
                "Transfer not mined in time",
                extra={"tx_hash": tx_hash, "to": to, "timeout": self._tx_timeout},
            )
            raise TransferPending(to, amount, tx_hash) from e


class Web3Token(TokenContract):
    """ERC20 token bound through a Web3Ledger.

    Parameters
    ----------
    ledger : Web3Ledger
        Ledger whose wallet holds the tokens and signs transfers.
    address : str
        Token contract address.
    """

    def __init__(self, ledger: Web3Ledger, address: str):
        self._ledger = ledger
        self._address = normalize_address(address)
        self._contract = ledger.w3.eth.contract(address=self._address, abi=ERC20_ABI)

    @property
    def address(self) -> str:
        return self._address

    def balance_of(self, address: str) -> int:
        return self._contract.functions.balanceOf(normalize_address(address)).call()

    def transfer(self, to: str, amount: int) -> bool:
        recipient = normalize_address(to)
        w3 = self._ledger.w3
        sender = self._ledger.wallet_address

        tx = self._contract.functions.transfer(recipient, amount).build_transaction(
            {
                "from": sender,
                "gas": TOKEN_TRANSFER_GAS,
                "gasPrice": w3.eth.gas_price,
                "nonce": w3.eth.get_transaction_count(sender),
                "chainId": w3.eth.chain_id,
            }
        )
        tx_hash = self._ledger._submit(tx)

        logger.info(
            "Token transfer submitted",
            extra={
                "tx_hash": tx_hash,
                "token_address": self._address,
                "to": recipient,
                "amount": amount,
            },
        )

        receipt = self._ledger._wait(tx_hash, recipient, amount)
        return receipt["status"] == 1
