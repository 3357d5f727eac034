"""Tests for Faucet Service module."""

from unittest.mock import MagicMock

import pytest
from prometheus_client import REGISTRY

from purple_faucet.blockchain.ledger import InMemoryLedger, InMemoryToken
from purple_faucet.core.errors import ErrorKind, TransferPending
from purple_faucet.faucet.engine import FaucetEngine
from purple_faucet.faucet.guards import Ownable, Pausable
from purple_faucet.faucet.service import (
    FaucetHealthCheck,
    FaucetOperation,
    FaucetResult,
    FaucetService,
    format_ether,
)
from purple_faucet.faucet.state import FaucetStats, StateStore
from purple_faucet.observability.health import HealthStatus

OWNER = "0x1111111111111111111111111111111111111111"
FAUCET = "0x2222222222222222222222222222222222222222"
ALICE = "0x3333333333333333333333333333333333333333"
TOKEN = "0x6666666666666666666666666666666666666666"
FUNDER = "0x7777777777777777777777777777777777777777"

ETHER = 10**18
PAYOUT = 10**16


def _requests(operation, status):
    return (
        REGISTRY.get_sample_value(
            "purple_requests_total", {"operation": operation, "status": status}
        )
        or 0
    )


@pytest.fixture
def service(engine):
    return FaucetService(engine)


@pytest.fixture
def funded_service(service):
    service.engine.receive_funds(FUNDER, ETHER)
    return service


class TestFormatEther:
    @pytest.mark.parametrize(
        "wei,expected",
        [(10**16, "0.01"), (ETHER, "1"), (0, "0"), (5 * ETHER, "5"), (1, "0.000000000000000001")],
    )
    def test_format(self, wei, expected):
        assert format_ether(wei) == expected


class TestFaucetResult:
    def test_success_result(self):
        result = FaucetResult(
            success=True,
            operation=FaucetOperation.PAYOUT,
            status="success",
            tx_hash="0xabc",
            amount=PAYOUT,
            message="Sent",
        )

        assert result.success is True
        assert result.operation == FaucetOperation.PAYOUT


class TestFaucetServiceLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop(self, service):
        assert service.is_running is False

        await service.start()
        assert service.is_running is True

        await service.stop()
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, service):
        await service.start()
        await service.start()
        assert service.is_running is True


class TestHandlePayout:
    """Tests for payout handling."""

    @pytest.mark.asyncio
    async def test_successful_payout(self, funded_service, ledger):
        before = _requests("payout", "success")

        result = await funded_service.handle_payout(OWNER, ALICE)

        assert result.success is True
        assert result.status == "success"
        assert result.operation == FaucetOperation.PAYOUT
        assert result.amount == PAYOUT
        assert result.tx_hash == ledger.transfers[0][2]
        assert result.message == f"Sent 0.01 to {ALICE}"
        assert _requests("payout", "success") == before + 1

    @pytest.mark.asyncio
    async def test_rejected_payout_returns_error_kind(self, service):
        before = _requests("payout", "insufficient_pool_balance")

        result = await service.handle_payout(OWNER, ALICE)

        assert result.success is False
        assert result.status == ErrorKind.INSUFFICIENT_POOL_BALANCE.value
        assert result.tx_hash is None
        assert result.amount == PAYOUT
        assert "insufficient balance" in result.message
        assert _requests("payout", "insufficient_pool_balance") == before + 1

    @pytest.mark.asyncio
    async def test_unauthorized_payout(self, funded_service):
        result = await funded_service.handle_payout(None, ALICE)

        assert result.success is False
        assert result.status == "unauthorized"

    @pytest.mark.asyncio
    async def test_ledger_crash_maps_to_transfer_failed(self, funded_service, ledger):
        """Unexpected ledger errors are reported, not raised."""
        ledger.send = MagicMock(side_effect=ConnectionError("node unreachable"))

        result = await funded_service.handle_payout(OWNER, ALICE)

        assert result.success is False
        assert result.status == ErrorKind.TRANSFER_FAILED.value
        assert "node unreachable" in result.message
        assert funded_service.engine.get_pool_balance() == ETHER

    @pytest.mark.asyncio
    async def test_unconfirmed_payout_is_committed(self, funded_service, ledger):
        ledger.send = MagicMock(side_effect=TransferPending(ALICE, PAYOUT, "0xabc"))

        result = await funded_service.handle_payout(OWNER, ALICE)

        assert result.success is True
        assert result.tx_hash == "0xabc"
        assert "not yet confirmed" in result.message
        assert funded_service.engine.get_pool_balance() == ETHER - PAYOUT

        repeat = await funded_service.handle_payout(OWNER, ALICE)
        assert repeat.status == "recipient_locked"

    @pytest.mark.asyncio
    async def test_payout_updates_metrics(self, funded_service):
        paid = REGISTRY.get_sample_value("purple_paid_out_wei_total") or 0

        await funded_service.handle_payout(OWNER, ALICE)

        assert REGISTRY.get_sample_value("purple_paid_out_wei_total") == paid + PAYOUT
        assert REGISTRY.get_sample_value("purple_pool_balance_wei") == ETHER - PAYOUT

    @pytest.mark.asyncio
    async def test_validate_payout(self, funded_service, ledger):
        result = await funded_service.validate_payout(OWNER, ALICE)

        assert result.success is True
        assert result.operation == FaucetOperation.VALIDATE_PAYOUT
        assert ledger.transfers == []
        assert funded_service.engine.get_stats().payout_count == 0


class TestOtherOperations:
    """Tests for funding, owner maintenance and configuration."""

    @pytest.mark.asyncio
    async def test_receive_funds(self, service):
        funded = REGISTRY.get_sample_value("purple_funded_wei_total") or 0

        result = await service.handle_receive_funds(FUNDER, ETHER)

        assert result.success is True
        assert result.amount == ETHER
        assert service.engine.get_pool_balance() == ETHER
        assert REGISTRY.get_sample_value("purple_funded_wei_total") == funded + ETHER

    @pytest.mark.asyncio
    async def test_receive_funds_invalid_amount(self, service):
        result = await service.handle_receive_funds(FUNDER, -1)

        assert result.success is False
        assert result.status == "invalid_amount"

    @pytest.mark.asyncio
    async def test_fund_owner(self, funded_service, ledger):
        top_ups = REGISTRY.get_sample_value("purple_owner_top_ups_total") or 0

        result = await funded_service.handle_fund_owner(OWNER)

        assert result.success is True
        assert result.amount == ETHER // 2
        assert ledger.balance_of(OWNER) == ETHER // 2
        assert REGISTRY.get_sample_value("purple_owner_top_ups_total") == top_ups + 1

    @pytest.mark.asyncio
    async def test_fund_owner_sufficient(self, funded_service, ledger):
        ledger.set_balance(OWNER, 3 * ETHER)

        result = await funded_service.handle_fund_owner(OWNER)

        assert result.status == "owner_balance_sufficient"

    @pytest.mark.asyncio
    async def test_withdraw_token(self, service):
        token = InMemoryToken(TOKEN, FAUCET, {FAUCET: 42})

        result = await service.handle_withdraw_token(OWNER, token)

        assert result.success is True
        assert result.amount == 42
        assert token.balance_of(OWNER) == 42

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, service):
        result = await service.pause(OWNER)
        assert result.success is True
        assert REGISTRY.get_sample_value("purple_paused") == 1

        result = await service.pause(OWNER)
        assert result.status == "already_paused"

        result = await service.resume(OWNER)
        assert result.success is True
        assert REGISTRY.get_sample_value("purple_paused") == 0

        result = await service.resume(OWNER)
        assert result.status == "not_paused"

    @pytest.mark.asyncio
    async def test_set_policy(self, service):
        assert (await service.set_payout_amount(OWNER, 2 * PAYOUT)).success is True
        assert (await service.set_lock_duration(OWNER, 60)).success is True

        assert service.engine.get_payout_amount() == 2 * PAYOUT
        assert service.engine.get_lock_duration() == 60

    @pytest.mark.asyncio
    async def test_set_policy_unauthorized(self, service):
        result = await service.set_lock_duration(ALICE, 60)

        assert result.status == "unauthorized"
        assert service.engine.get_lock_duration() == 86400


class TestPersistence:
    """Snapshots are written after committed changes only."""

    @pytest.mark.asyncio
    async def test_success_persists(self, engine, tmp_path):
        store = StateStore(tmp_path / "state.json")
        service = FaucetService(engine, store)

        await service.handle_receive_funds(FUNDER, ETHER)
        await service.handle_payout(OWNER, ALICE)

        snapshot = store.load()
        assert snapshot.state.pool_balance == ETHER - PAYOUT
        assert ALICE in snapshot.state.locks

    @pytest.mark.asyncio
    async def test_failure_does_not_persist(self, engine, tmp_path):
        store = StateStore(tmp_path / "state.json")
        service = FaucetService(engine, store)

        await service.handle_payout(OWNER, ALICE)

        assert store.load() is None

    @pytest.mark.asyncio
    async def test_validation_does_not_persist(self, engine, tmp_path):
        store = StateStore(tmp_path / "state.json")
        service = FaucetService(engine, store)
        engine.receive_funds(FUNDER, ETHER)

        await service.validate_payout(OWNER, ALICE)

        assert store.load() is None

    @pytest.mark.asyncio
    async def test_services_sharing_store_keep_each_others_changes(self, engine, tmp_path):
        """Two processes over one state file see and keep each other's writes."""
        store = StateStore(tmp_path / "state.json")
        cli = FaucetService(engine, store)
        other = FaucetEngine(FAUCET, InMemoryLedger(), Ownable(OWNER), Pausable())
        running = FaucetService(other, StateStore(tmp_path / "state.json"))
        await running.start()

        await cli.handle_receive_funds(FUNDER, 10**17)
        result = await running.pause(OWNER)

        assert result.success is True
        snapshot = store.load()
        assert snapshot.state.pool_balance == 10**17
        assert snapshot.paused is True

    @pytest.mark.asyncio
    async def test_recipient_lock_seen_across_services(self, engine, clock, tmp_path):
        store = StateStore(tmp_path / "state.json")
        first = FaucetService(engine, store)
        other = FaucetEngine(FAUCET, InMemoryLedger(), Ownable(OWNER), Pausable(), clock=clock)
        second = FaucetService(other, store)
        await first.handle_receive_funds(FUNDER, ETHER)

        assert (await first.handle_payout(OWNER, ALICE)).success is True
        result = await second.handle_payout(OWNER, ALICE)

        assert result.status == "recipient_locked"
        assert (await second.get_status()).stats.payout_count == 1

    @pytest.mark.asyncio
    async def test_save_failure_reports_success_with_warning(self, engine, ledger, tmp_path):
        store = StateStore(tmp_path / "state.json")
        service = FaucetService(engine, store)
        await service.handle_receive_funds(FUNDER, ETHER)
        store.save = MagicMock(side_effect=OSError("disk full"))

        result = await service.handle_payout(OWNER, ALICE)

        assert result.success is True
        assert "state not saved: disk full" in result.message
        assert ledger.balance_of(ALICE) == PAYOUT

        status = await service.get_status()
        assert status.healthy is False
        assert "could not be saved" in status.message
        assert status.pool_balance == ETHER - PAYOUT
        assert ALICE in service.engine.snapshot().state.locks

    @pytest.mark.asyncio
    async def test_later_save_clears_failure(self, engine, tmp_path):
        store = StateStore(tmp_path / "state.json")
        service = FaucetService(engine, store)
        save = store.save
        store.save = MagicMock(side_effect=OSError("disk full"))
        await service.handle_receive_funds(FUNDER, ETHER)

        store.save = save
        await service.set_lock_duration(OWNER, 60)

        assert (await service.get_status()).healthy is True
        assert store.load().state.pool_balance == ETHER


class TestStatus:
    """Tests for status reporting."""

    @pytest.mark.asyncio
    async def test_healthy_status(self, funded_service):
        status = await funded_service.get_status()

        assert status.healthy is True
        assert status.paused is False
        assert status.owner == OWNER
        assert status.pool_balance == ETHER
        assert status.payout_amount == PAYOUT
        assert status.lock_duration == 86400
        assert status.stats == FaucetStats(0, 0, ETHER)
        assert status.message == "Faucet operational"

    @pytest.mark.asyncio
    async def test_empty_pool_unhealthy(self, service):
        status = await service.get_status()

        assert status.healthy is False
        assert "below one payout" in status.message

    @pytest.mark.asyncio
    async def test_paused_unhealthy(self, funded_service):
        await funded_service.pause(OWNER)

        status = await funded_service.get_status()

        assert status.healthy is False
        assert status.paused is True

    @pytest.mark.asyncio
    async def test_recipient_status(self, funded_service, clock):
        await funded_service.handle_payout(OWNER, ALICE)
        clock.advance(600)

        recipient = await funded_service.get_recipient_status(ALICE)

        assert recipient.last_payout == clock.now - 600
        assert recipient.unlocks_at == clock.now - 600 + 86400
        assert recipient.cooldown_seconds == 86400 - 600

    @pytest.mark.asyncio
    async def test_recipient_never_paid(self, service):
        recipient = await service.get_recipient_status(ALICE)

        assert recipient.last_payout == 0
        assert recipient.unlocks_at == 0
        assert recipient.cooldown_seconds == 0

    @pytest.mark.asyncio
    async def test_recipient_lock_elapsed(self, funded_service, clock):
        await funded_service.handle_payout(OWNER, ALICE)
        clock.advance(2 * 86400)

        recipient = await funded_service.get_recipient_status(ALICE)

        assert recipient.cooldown_seconds == 0


class TestFaucetHealthCheck:
    @pytest.mark.asyncio
    async def test_ready_when_healthy(self, funded_service):
        result = await FaucetHealthCheck(funded_service).check()

        assert result.name == "faucet"
        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_not_ready_when_paused(self, funded_service):
        await funded_service.pause(OWNER)

        result = await FaucetHealthCheck(funded_service).check()

        assert result.status == HealthStatus.NOT_READY
        assert result.message == "Faucet withdrawals are paused"
