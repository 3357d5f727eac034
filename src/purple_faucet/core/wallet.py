"""Operator wallet used to sign faucet transactions."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import SecretStr

logger = logging.getLogger(__name__)


class WalletProvider(ABC):
    """Source of the faucet operator's signing account."""

    @abstractmethod
    def get_account(self) -> LocalAccount:
        """Get the signing account.

        Returns
        -------
        LocalAccount
            The account instance for transaction signing.
        """
        ...

    @property
    def address(self) -> str:
        """Checksummed address of the operator (the faucet owner)."""
        return self.get_account().address


class EnvironmentWallet(WalletProvider):
    """Operator key read from a secret value or a key file.

    Parameters
    ----------
    private_key : SecretStr, optional
        The private key, usually from ``PURPLE_WALLET_PRIVATE_KEY``.
    private_key_file : str, optional
        Path to a file holding the private key.

    Raises
    ------
    ValueError
        If neither private_key nor private_key_file is provided.
    FileNotFoundError
        If private_key_file does not exist.
    """

    def __init__(
        self,
        private_key: SecretStr | None = None,
        private_key_file: str | None = None,
    ):
        if private_key is not None:
            self._account = Account.from_key(private_key.get_secret_value())
        elif private_key_file is not None:
            key_path = Path(private_key_file).expanduser()
            if not key_path.exists():
                raise FileNotFoundError(f"Private key file not found: {private_key_file}")
            self._account = Account.from_key(key_path.read_text().strip())
        else:
            raise ValueError("Either private_key or private_key_file must be provided")

    @classmethod
    def from_config(cls, config) -> "EnvironmentWallet":
        """Build the operator wallet from a FaucetConfig.

        The inline key wins when both the key and the key file are set.

        Raises
        ------
        ValueError
            If the configuration names no key at all.
        """
        if config.wallet_private_key:
            if config.wallet_private_key_file:
                logger.warning(
                    "Both PURPLE_WALLET_PRIVATE_KEY and PURPLE_WALLET_PRIVATE_KEY_FILE set; "
                    "using PURPLE_WALLET_PRIVATE_KEY"
                )
            return cls(private_key=config.wallet_private_key)
        if config.wallet_private_key_file:
            return cls(private_key_file=config.wallet_private_key_file)
        raise ValueError(
            "No wallet configured. "
            "Set PURPLE_WALLET_PRIVATE_KEY or PURPLE_WALLET_PRIVATE_KEY_FILE"
        )

    def get_account(self) -> LocalAccount:
        return self._account
