"""Purple Faucet - custodial native-currency faucet."""

__version__ = "0.1.0"
