"""Observability for the faucet: logging, metrics and health endpoints."""

from .health import CheckResult, HealthCheck, HealthServer, HealthStatus
from .logging import clear_request_id, configure_logging, get_logger, set_request_id
from .metrics import (
    FUNDED,
    OWNER_TOP_UPS,
    PAID_OUT,
    PAUSED,
    POOL_BALANCE,
    REQUEST_DURATION,
    REQUESTS,
)

__all__ = [
    # Health
    "CheckResult",
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "set_request_id",
    # Metrics
    "FUNDED",
    "OWNER_TOP_UPS",
    "PAID_OUT",
    "PAUSED",
    "POOL_BALANCE",
    "REQUEST_DURATION",
    "REQUESTS",
]
