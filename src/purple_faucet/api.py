"""HTTP API for the faucet.

Routes (registered on the HealthServer application):
- GET  /api/status                 Faucet status
- GET  /api/recipients/{address}   Lock information for a recipient
- POST /api/payout                 {"address": ...}
- POST /api/fund-owner
- POST /api/withdraw-token         {"token": ...}
- POST /api/pause
- POST /api/resume
- PUT  /api/config                 {"payout_amount"?: wei, "lock_duration"?: seconds}
- POST /api/funds                  {"sender": ..., "amount": wei}

Requests carrying ``Authorization: Bearer <PURPLE_API_TOKEN>`` act as the
faucet owner; all others act as an anonymous caller.
"""

import hmac
import logging
import uuid
from collections.abc import Callable

from aiohttp import web
from pydantic import SecretStr

from purple_faucet.blockchain.ledger import TokenContract, normalize_address
from purple_faucet.core.errors import ErrorKind, FaucetError
from purple_faucet.faucet.service import SUCCESS, FaucetResult, FaucetService
from purple_faucet.observability.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS = {
    ErrorKind.UNAUTHORIZED.value: 403,
    ErrorKind.INVALID_ADDRESS.value: 400,
    ErrorKind.INVALID_AMOUNT.value: 400,
    ErrorKind.TRANSFER_FAILED.value: 502,
}


def http_status(status: str) -> int:
    """Map a result status to an HTTP status code."""
    if status == SUCCESS:
        return 200
    return ERROR_STATUS.get(status, 409)


@web.middleware
async def request_id_middleware(request: web.Request, handler):
    """Bind a request ID to every log line emitted while serving a request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        response = await handler(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        clear_request_id()


def _result_response(result: FaucetResult) -> web.Response:
    return web.json_response(
        {
            "success": result.success,
            "operation": result.operation.value,
            "status": result.status,
            "tx_hash": result.tx_hash,
            "amount": str(result.amount),
            "message": result.message,
        },
        status=http_status(result.status),
    )


def _error_response(kind: ErrorKind, message: str) -> web.Response:
    return web.json_response(
        {"success": False, "status": kind.value, "message": message},
        status=http_status(kind.value),
    )


def _parse_uint(value) -> int | None:
    """Accept JSON integers or decimal digit strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


class FaucetAPI:
    """aiohttp handlers exposing a FaucetService.

    Parameters
    ----------
    service : FaucetService
        The faucet service.
    token_factory : Callable[[str], TokenContract]
        Builds a token handle from a checksummed contract address.
    api_token : SecretStr | None
        Bearer token granting owner rights; None disables owner access.
    """

    def __init__(
        self,
        service: FaucetService,
        token_factory: Callable[[str], TokenContract],
        api_token: SecretStr | None = None,
    ):
        self._service = service
        self._token_factory = token_factory
        self._api_token = api_token

    def register(self, app: web.Application) -> None:
        """Add the API routes and request ID middleware to an application."""
        app.middlewares.append(request_id_middleware)
        app.router.add_get("/api/status", self.handle_status)
        app.router.add_get("/api/recipients/{address}", self.handle_recipient)
        app.router.add_post("/api/payout", self.handle_payout)
        app.router.add_post("/api/fund-owner", self.handle_fund_owner)
        app.router.add_post("/api/withdraw-token", self.handle_withdraw_token)
        app.router.add_post("/api/pause", self.handle_pause)
        app.router.add_post("/api/resume", self.handle_resume)
        app.router.add_put("/api/config", self.handle_config)
        app.router.add_post("/api/funds", self.handle_funds)

    def _authenticated(self, request: web.Request) -> bool:
        if self._api_token is None:
            return False
        scheme, _, presented = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not presented:
            return False
        return hmac.compare_digest(
            presented.strip().encode(), self._api_token.get_secret_value().encode()
        )

    def _caller(self, request: web.Request) -> str | None:
        return self._service.engine.owner if self._authenticated(request) else None

    async def _json_body(self, request: web.Request) -> dict | None:
        if not request.can_read_body:
            return {}
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    async def handle_status(self, _request: web.Request) -> web.Response:
        status = await self._service.get_status()
        return web.json_response(
            {
                "healthy": status.healthy,
                "paused": status.paused,
                "owner": status.owner,
                "pool_balance": str(status.pool_balance),
                "payout_amount": str(status.payout_amount),
                "lock_duration": status.lock_duration,
                "stats": {
                    "payout_count": status.stats.payout_count,
                    "total_paid_out": str(status.stats.total_paid_out),
                    "total_funded": str(status.stats.total_funded),
                },
                "message": status.message,
            }
        )

    async def handle_recipient(self, request: web.Request) -> web.Response:
        try:
            recipient = await self._service.get_recipient_status(request.match_info["address"])
        except FaucetError as e:
            return _error_response(e.kind, e.message)
        return web.json_response(
            {
                "address": recipient.address,
                "last_payout": recipient.last_payout,
                "unlocks_at": recipient.unlocks_at,
                "cooldown_seconds": recipient.cooldown_seconds,
            }
        )

    async def handle_payout(self, request: web.Request) -> web.Response:
        body = await self._json_body(request)
        address = body.get("address") if body else None
        if not isinstance(address, str):
            return _error_response(ErrorKind.INVALID_ADDRESS, "Request must include an address")

        logger.info("Payout requested over HTTP", extra={"recipient": address})
        result = await self._service.handle_payout(self._caller(request), address)
        return _result_response(result)

    async def handle_fund_owner(self, request: web.Request) -> web.Response:
        result = await self._service.handle_fund_owner(self._caller(request))
        return _result_response(result)

    async def handle_withdraw_token(self, request: web.Request) -> web.Response:
        body = await self._json_body(request)
        token_address = body.get("token") if body else None
        if not isinstance(token_address, str):
            return _error_response(ErrorKind.INVALID_ADDRESS, "Request must include a token")
        try:
            token = self._token_factory(normalize_address(token_address))
        except FaucetError as e:
            return _error_response(e.kind, e.message)

        result = await self._service.handle_withdraw_token(self._caller(request), token)
        return _result_response(result)

    async def handle_pause(self, request: web.Request) -> web.Response:
        result = await self._service.pause(self._caller(request))
        return _result_response(result)

    async def handle_resume(self, request: web.Request) -> web.Response:
        result = await self._service.resume(self._caller(request))
        return _result_response(result)

    async def handle_config(self, request: web.Request) -> web.Response:
        body = await self._json_body(request)
        if not body or not ({"payout_amount", "lock_duration"} & body.keys()):
            return _error_response(
                ErrorKind.INVALID_AMOUNT,
                "Request must include payout_amount or lock_duration",
            )

        updates = {}
        for field in ("payout_amount", "lock_duration"):
            if field in body:
                value = _parse_uint(body[field])
                if value is None:
                    return _error_response(
                        ErrorKind.INVALID_AMOUNT, f"Invalid {field}: {body[field]!r}"
                    )
                updates[field] = value

        caller = self._caller(request)
        results = []
        if "payout_amount" in updates:
            results.append(await self._service.set_payout_amount(caller, updates["payout_amount"]))
        if "lock_duration" in updates and all(r.success for r in results):
            results.append(await self._service.set_lock_duration(caller, updates["lock_duration"]))

        failed = next((r for r in results if not r.success), None)
        return _result_response(failed or results[-1])

    async def handle_funds(self, request: web.Request) -> web.Response:
        if not self._authenticated(request):
            return _error_response(ErrorKind.UNAUTHORIZED, "Recording funds requires the API token")

        body = await self._json_body(request)
        if not body:
            return _error_response(
                ErrorKind.INVALID_AMOUNT, "Request must include sender and amount"
            )
        sender = body.get("sender")
        amount = _parse_uint(body.get("amount"))
        if not isinstance(sender, str):
            return _error_response(ErrorKind.INVALID_ADDRESS, "Request must include a sender")
        if amount is None:
            return _error_response(
                ErrorKind.INVALID_AMOUNT, f"Invalid amount: {body.get('amount')!r}"
            )

        result = await self._service.handle_receive_funds(sender, amount)
        return _result_response(result)
