"""Allow ``python -m purple_faucet``."""

from purple_faucet.main import main

main()
