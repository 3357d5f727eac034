"""Configuration management for the faucet using Pydantic Settings."""

from decimal import Decimal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from purple_faucet.blockchain.ledger import normalize_address, validate_address


class FaucetConfig(BaseSettings):
    """Faucet configuration loaded from environment variables.

    Currency amounts are given in ether units and exposed in wei through the
    ``*_wei`` properties.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Network
    rpc_endpoint: str = Field(alias="PURPLE_RPC_ENDPOINT")
    chain_id: int | None = Field(default=None, alias="PURPLE_CHAIN_ID")
    tx_timeout: int = Field(default=120, alias="PURPLE_TX_TIMEOUT", gt=0)

    # Wallet
    wallet_private_key: SecretStr | None = Field(default=None, alias="PURPLE_WALLET_PRIVATE_KEY")
    wallet_private_key_file: str | None = Field(
        default=None, alias="PURPLE_WALLET_PRIVATE_KEY_FILE"
    )

    # Owner: the account allowed to run owner-only operations. It must differ
    # from the wallet, which holds the faucet pool.
    owner_address: str | None = Field(default=None, alias="PURPLE_OWNER_ADDRESS")

    # Payout policy
    payout_amount: Decimal = Field(default=Decimal("0.01"), alias="PURPLE_PAYOUT_AMOUNT", ge=0)
    lock_duration: int = Field(default=86400, alias="PURPLE_LOCK_DURATION", ge=0)

    # Owner fee top-up policy
    owner_min_balance: Decimal = Field(
        default=Decimal("2"), alias="PURPLE_OWNER_MIN_BALANCE", gt=0
    )
    owner_top_up: Decimal = Field(default=Decimal("0.5"), alias="PURPLE_OWNER_TOP_UP", gt=0)

    # State
    state_file: str | None = Field(default=None, alias="PURPLE_STATE_FILE")

    # HTTP API
    api_token: SecretStr | None = Field(default=None, alias="PURPLE_API_TOKEN")

    # Observability
    metrics_port: int = Field(default=8080, alias="PURPLE_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="PURPLE_LOG_LEVEL")
    log_format: str = Field(default="json", alias="PURPLE_LOG_FORMAT")

    @field_validator("owner_address")
    @classmethod
    def _checksum_owner(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not validate_address(v):
            raise ValueError(f"Invalid owner address: {v}")
        return normalize_address(v)

    @model_validator(mode="after")
    def _top_up_below_threshold(self) -> "FaucetConfig":
        if self.owner_top_up >= self.owner_min_balance:
            raise ValueError(
                "PURPLE_OWNER_TOP_UP must be below PURPLE_OWNER_MIN_BALANCE "
                f"({self.owner_top_up} >= {self.owner_min_balance})"
            )
        return self

    @property
    def payout_amount_wei(self) -> int:
        return Web3.to_wei(self.payout_amount, "ether")

    @property
    def owner_min_balance_wei(self) -> int:
        return Web3.to_wei(self.owner_min_balance, "ether")

    @property
    def owner_top_up_wei(self) -> int:
        return Web3.to_wei(self.owner_top_up, "ether")
