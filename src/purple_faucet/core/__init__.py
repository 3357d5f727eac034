"""Core faucet components shared by every layer."""

from .errors import ErrorKind, FaucetError
from .wallet import EnvironmentWallet, WalletProvider

__all__ = [
    "EnvironmentWallet",
    "ErrorKind",
    "FaucetError",
    "WalletProvider",
]
