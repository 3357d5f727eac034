"""HTTP server for health checks, metrics and the faucet API.

Endpoints:
- /health: Liveness check (200 while the process is alive)
- /ready: Readiness check (200 when every registered check passes)
- /metrics: Prometheus metrics
Further routes (the faucet API) are added to ``HealthServer.app`` before start.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from aiohttp import web
from prometheus_client import REGISTRY, generate_latest

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health check status values."""

    OK = "ok"
    ERROR = "error"
    NOT_READY = "not_ready"


@dataclass
class CheckResult:
    """Result of a single readiness check."""

    name: str
    status: HealthStatus
    message: str | None = None


@dataclass
class HealthResult:
    """Combined readiness result."""

    status: HealthStatus
    checks: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dict; checks are omitted when empty."""
        result = {"status": self.status.value}
        if self.checks:
            result["checks"] = self.checks
        return result


class HealthCheck(ABC):
    """A named readiness check."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name reported under the /ready checks."""
        ...

    @abstractmethod
    async def check(self) -> CheckResult:
        """Perform the check.

        Returns
        -------
        CheckResult
            OK, or NOT_READY / ERROR with a message.
        """
        ...


class HealthServer:
    """aiohttp server hosting health checks, metrics and any added routes.

    Parameters
    ----------
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    """

    # 0.0.0.0 so container health checks and scrapers can reach the server
    def __init__(self, host: str = "0.0.0.0", port: int = 8080):  # noqa: S104
        self._host = host
        self._port = port
        self._checks: list[HealthCheck] = []
        self._app = web.Application()
        self._app.router.add_get("/health", self._handle_health)
        self._app.router.add_get("/ready", self._handle_ready)
        self._app.router.add_get("/metrics", self._handle_metrics)
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def app(self) -> web.Application:
        """The aiohttp application; register extra routes before start()."""
        return self._app

    def add_check(self, check: HealthCheck) -> None:
        """Register a readiness check.

        Parameters
        ----------
        check : HealthCheck
            Check run on every /ready request.
        """
        self._checks.append(check)

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info("HTTP server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop the server; a no-op if it is not running."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("HTTP server stopped")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Handle /health (liveness check)."""
        return web.json_response({"status": "ok"})

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        """Handle /ready (readiness check); 503 when any check fails."""
        result = await self.check_readiness()
        status_code = 200 if result.status == HealthStatus.OK else 503
        return web.json_response(result.to_dict(), status=status_code)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        """Handle /metrics (Prometheus exposition format)."""
        return web.Response(
            body=generate_latest(REGISTRY),
            content_type="text/plain",
            charset="utf-8",
        )

    async def check_readiness(self) -> HealthResult:
        """Run every registered check.

        A check that raises counts as failed and its error is reported.

        Returns
        -------
        HealthResult
            Combined result of all checks.
        """
        if not self._checks:
            return HealthResult(status=HealthStatus.OK)

        checks: dict[str, str] = {}
        all_ok = True

        for check in self._checks:
            try:
                result = await check.check()
            except Exception as e:
                logger.exception("Readiness check failed", extra={"check": check.name})
                checks[check.name] = f"error: {type(e).__name__}: {e}"
                all_ok = False
                continue

            if result.status == HealthStatus.OK:
                checks[result.name] = "ok"
            else:
                checks[result.name] = result.message or "error"
                all_ok = False

        return HealthResult(
            status=HealthStatus.OK if all_ok else HealthStatus.NOT_READY,
            checks=checks,
        )
