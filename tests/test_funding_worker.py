"""Tests for the funding worker actor."""

from __future__ import annotations

import asyncio
import random
from decimal import Decimal

import pytest
from pydantic import ValidationError
from solders.keypair import Keypair

from engine.bot_registry import BotRegistry
from engine.errors import NetworkError
from engine.funding_planner import FundingPlanner
from engine.funding_worker import (
    ErrorEvent,
    FundingCommand,
    FundingRequestEvent,
    FundingWorker,
    LogEvent,
    WalletsEvent,
    adopt_wallets,
)
from ledger_client.constants import TRANSFER_FEE_RESERVE
from ledger_client.models import AccountInfo


class FakeClock:
    def __init__(self) -> None:
        self.current = 0.0

    def now_ms(self) -> int:
        return int(self.current * 1000)

    def monotonic(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.current += seconds
        await asyncio.sleep(0)


class FakeLedger:
    def __init__(self, fail_transfers_to: set[str] | None = None) -> None:
        self.grants: list[tuple[str, Decimal]] = []
        self.transfers: list[tuple[str, str, Decimal]] = []
        self.balances: dict[str, Decimal] = {}
        self.fail_transfers_to = fail_transfers_to or set()
        self.closed = False

    async def request_faucet_grant(self, pubkey: str, amount: Decimal) -> str:
        self.grants.append((pubkey, amount))
        return f"grant-{len(self.grants)}"

    async def transfer(self, from_keypair, to_pubkey: str, amount: Decimal) -> str:
        if to_pubkey in self.fail_transfers_to or "*" in self.fail_transfers_to:
            raise NetworkError("blockhash not found")
        self.transfers.append((str(from_keypair.pubkey()), to_pubkey, amount))
        return f"transfer-{len(self.transfers)}"

    async def confirm_transaction(self, signature: str) -> bool:
        return True

    async def get_token_account_balance(self, vault_address: str):
        return None

    async def get_account_info(self, address: str):
        balance = self.balances.get(address)
        if balance is None:
            return None
        return AccountInfo(
            lamports=int(balance * 10**9), owner="11111111111111111111111111111111"
        )

    async def close(self) -> None:
        self.closed = True


def _command(**overrides) -> FundingCommand:
    values = {
        "total_amount": Decimal("3"),
        "duration_minutes": 5,
        "network": "devnet",
        "rpc_endpoint": "https://api.devnet.solana.com",
        "wallet_count": 3,
    }
    values.update(overrides)
    return FundingCommand(**values)


def _worker(ledger: FakeLedger, **kwargs) -> FundingWorker:
    return FundingWorker(
        lambda endpoint: ledger,
        FundingPlanner(random.Random(11), min_delay_sec=1, max_delay_sec=2),
        FakeClock(),
        **kwargs,
    )


async def _collect(worker: FundingWorker) -> list:
    return [event async for event in worker.events()]


@pytest.mark.asyncio
async def test_devnet_run_funds_every_wallet_through_intermediates():
    ledger = FakeLedger()
    worker = _worker(ledger)

    worker.start(_command())
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    wallet_events = [e for e in events if isinstance(e, WalletsEvent)]
    assert len(wallet_events) == 1
    assert len(wallet_events[0].wallets) == 3
    assert all(len(secret) == 64 for secret in wallet_events[0].wallets)

    assert len(ledger.grants) == 3
    assert len(ledger.transfers) == 3
    total = sum((amount for _, _, amount in ledger.transfers), Decimal("0"))
    assert total == Decimal("3")
    for (granted_to, grant), (sender, _, amount) in zip(
        sorted(ledger.grants), sorted((t[0], t[2]) for t in ledger.transfers)
    ):
        assert granted_to == sender
        assert grant == amount + TRANSFER_FEE_RESERVE

    destinations = {
        str(Keypair.from_bytes(bytes(secret)).pubkey())
        for secret in wallet_events[0].wallets
    }
    assert destinations == {to for _, to, _ in ledger.transfers}
    assert ledger.closed is True
    assert any(isinstance(e, LogEvent) for e in events)
    assert not worker.running


@pytest.mark.asyncio
async def test_failed_wallet_is_logged_and_others_continue():
    ledger = FakeLedger()
    original_transfer = ledger.transfer
    calls = {"count": 0}

    async def flaky_transfer(from_keypair, to_pubkey, amount):
        calls["count"] += 1
        if calls["count"] == 1:
            raise NetworkError("node unavailable")
        return await original_transfer(from_keypair, to_pubkey, amount)

    ledger.transfer = flaky_transfer
    worker = _worker(ledger)

    worker.start(_command())
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    wallets = next(e for e in events if isinstance(e, WalletsEvent)).wallets
    assert len(wallets) == 2
    failures = [
        e for e in events if isinstance(e, LogEvent) and "failed" in e.log
    ]
    assert len(failures) == 1
    assert "node unavailable" in failures[0].log
    assert not any(isinstance(e, ErrorEvent) for e in events)


@pytest.mark.asyncio
async def test_all_failures_emit_empty_wallet_list():
    ledger = FakeLedger(fail_transfers_to={"*"})
    worker = _worker(ledger)

    worker.start(_command())
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    wallets = next(e for e in events if isinstance(e, WalletsEvent)).wallets
    assert wallets == []


@pytest.mark.asyncio
async def test_mainnet_emits_funding_request_and_waits_for_deposit():
    ledger = FakeLedger()
    worker = _worker(ledger, balance_poll_sec=1.0)
    requests: list[FundingRequestEvent] = []

    worker.start(_command(network="mainnet-beta", wallet_count=1))
    events = []
    async for event in worker.events():
        events.append(event)
        if isinstance(event, FundingRequestEvent):
            requests.append(event)
            ledger.balances[event.to] = event.amount

    assert ledger.grants == []
    assert len(requests) == 1
    assert requests[0].amount == Decimal("3") + TRANSFER_FEE_RESERVE
    assert ledger.transfers[0][0] == requests[0].to
    assert ledger.transfers[0][2] == Decimal("3")
    wallets = next(e for e in events if isinstance(e, WalletsEvent)).wallets
    assert len(wallets) == 1


@pytest.mark.asyncio
async def test_mainnet_deposit_timeout_fails_wallet():
    ledger = FakeLedger()
    worker = _worker(ledger, funding_timeout_sec=10, balance_poll_sec=2)

    worker.start(_command(network="mainnet-beta", wallet_count=1))
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    assert ledger.transfers == []
    wallets = next(e for e in events if isinstance(e, WalletsEvent)).wallets
    assert wallets == []
    assert any(
        isinstance(e, LogEvent) and "operator transfer failed" in e.log
        for e in events
    )


@pytest.mark.asyncio
async def test_planner_rejection_surfaces_as_error_event():
    ledger = FakeLedger()
    worker = _worker(ledger)

    worker.start(_command(total_amount=Decimal("0.000000001"), wallet_count=6))
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    assert isinstance(events[-1], ErrorEvent)
    assert ledger.grants == []


@pytest.mark.asyncio
async def test_terminate_cancels_pending_sends():
    ledger = FakeLedger()
    gate = asyncio.Event()

    class StalledClock(FakeClock):
        async def sleep(self, seconds: float) -> None:
            await gate.wait()

    worker = FundingWorker(
        lambda endpoint: ledger,
        FundingPlanner(random.Random(3)),
        StalledClock(),
    )

    worker.start(_command())
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await worker.terminate()
    gate.set()
    events = await asyncio.wait_for(_collect(worker), timeout=5)

    assert ledger.grants == []
    assert ledger.transfers == []
    assert not any(isinstance(e, WalletsEvent) for e in events)
    assert ledger.closed is True


@pytest.mark.asyncio
async def test_worker_cannot_start_twice():
    worker = _worker(FakeLedger())
    worker.start(_command())

    with pytest.raises(RuntimeError):
        worker.start(_command())
    await worker.terminate()


def test_command_validation():
    with pytest.raises(ValidationError):
        _command(total_amount=Decimal("0"))
    with pytest.raises(ValidationError):
        _command(duration_minutes=0)
    with pytest.raises(ValidationError):
        _command(network="testnet")
    with pytest.raises(ValidationError):
        _command(rpc_endpoint="ftp://example.com")


def test_adopt_wallets_registers_funded_keypairs():
    registry = BotRegistry()
    wallets = [Keypair(), Keypair()]
    event = WalletsEvent(wallets=[list(bytes(kp)) for kp in wallets])

    bot_ids = adopt_wallets(registry, event, interval_ms=2000)

    assert bot_ids == [str(kp.pubkey()) for kp in wallets]
    assert registry.list_bots() == bot_ids
    assert registry._bots[bot_ids[0]].interval_ms == 2000
