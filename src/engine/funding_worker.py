"""Background funding run: executes a FundingPlan over a ledger client.

The worker talks to its host only through messages. ``start`` takes a
``FundingCommand``; progress comes back as events on a bounded queue that the
host drains with ``events()``. ``terminate`` cancels every pending send.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import AsyncIterator, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.keypair import Keypair

from engine.bot_registry import BotRegistry
from engine.clock import Clock, SystemClock
from engine.errors import FundingError, NetworkError
from engine.funding_planner import DEFAULT_WALLET_COUNT, FundingPlanner
from engine.ledger_client import LedgerClient
from ledger_client.constants import FAUCET_NETWORKS, TRANSFER_FEE_RESERVE
from strategies.base import Strategy
from utils.config_validator import ConfigurationError, validate_url

LOGGER = logging.getLogger("amm_fleet.engine.funding_worker")

DEFAULT_FUNDING_TIMEOUT_SEC = 600.0
DEFAULT_BALANCE_POLL_SEC = 5.0


class FundingCommand(BaseModel):
    """Starts one funding run."""

    model_config = ConfigDict(frozen=True)

    total_amount: Decimal = Field(gt=0)
    duration_minutes: int = Field(ge=1)
    network: Literal["devnet", "mainnet-beta"]
    rpc_endpoint: str
    wallet_count: int = Field(default=DEFAULT_WALLET_COUNT, ge=1)

    @field_validator("rpc_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        validate_url({"rpc_endpoint": v})
        return v


class LogEvent(BaseModel):
    log: str


class WalletsEvent(BaseModel):
    wallets: list[list[int]]


class ErrorEvent(BaseModel):
    error: str


class FundingRequestEvent(BaseModel):
    """Asks the operator to sign a transfer of ``amount`` SOL to ``to``."""

    to: str
    amount: Decimal


FundingEvent = Union[LogEvent, WalletsEvent, ErrorEvent, FundingRequestEvent]
LedgerFactory = Callable[[str], LedgerClient]


class FundingWorker:
    def __init__(
        self,
        ledger_factory: LedgerFactory,
        planner: FundingPlanner | None = None,
        clock: Clock | None = None,
        *,
        queue_size: int = 100,
        funding_timeout_sec: float = DEFAULT_FUNDING_TIMEOUT_SEC,
        balance_poll_sec: float = DEFAULT_BALANCE_POLL_SEC,
    ) -> None:
        self._ledger_factory = ledger_factory
        self._planner = planner or FundingPlanner()
        self._clock = clock or SystemClock()
        self._queue: asyncio.Queue[FundingEvent] = asyncio.Queue(maxsize=queue_size)
        self._closed = asyncio.Event()
        self._run_task: asyncio.Task[None] | None = None
        self._wallet_tasks: set[asyncio.Task[bool]] = set()
        self.funding_timeout_sec = funding_timeout_sec
        self.balance_poll_sec = balance_poll_sec

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def start(self, command: FundingCommand) -> asyncio.Task[None]:
        if self._run_task is not None:
            raise RuntimeError("Funding worker already started")
        self._run_task = asyncio.get_running_loop().create_task(
            self._run(command), name="funding-run"
        )
        return self._run_task

    async def events(self) -> AsyncIterator[FundingEvent]:
        """Yield events until the run finishes and the queue is drained."""
        while True:
            if not self._queue.empty():
                yield self._queue.get_nowait()
                continue
            if self._closed.is_set():
                return
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            done, _ = await asyncio.wait(
                {getter, closer}, return_when=asyncio.FIRST_COMPLETED
            )
            if not closer.done():
                closer.cancel()
            if getter in done:
                yield getter.result()
            else:
                getter.cancel()

    async def terminate(self) -> None:
        """Cancel the run and every scheduled send that has not completed."""
        tasks: list[asyncio.Task] = list(self._wallet_tasks)
        if self._run_task is not None:
            tasks.append(self._run_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._wallet_tasks.clear()
        self._closed.set()
        LOGGER.info("Funding worker terminated")

    async def _emit(self, event: FundingEvent) -> None:
        await self._queue.put(event)

    async def _log(self, message: str) -> None:
        LOGGER.debug("%s", message)
        await self._emit(LogEvent(log=message))

    async def _run(self, command: FundingCommand) -> None:
        ledger: LedgerClient | None = None
        try:
            plan = self._planner.plan(
                command.total_amount, command.duration_minutes, command.wallet_count
            )
            destinations, intermediates = self._planner.generate_wallets(
                plan.wallet_count
            )
            await self._log(
                f"Generated {plan.wallet_count} trading wallets and "
                f"{plan.wallet_count} intermediate wallets"
            )
            ledger = self._ledger_factory(command.rpc_endpoint)

            offsets = plan.schedule_ms()
            pipelines: list[asyncio.Task[bool]] = []
            for index, (amount, offset) in enumerate(zip(plan.amounts, offsets)):
                task = asyncio.get_running_loop().create_task(
                    self._fund_wallet(
                        ledger,
                        command.network,
                        intermediates[index],
                        destinations[index],
                        amount,
                        offset,
                    ),
                    name=f"funding-wallet-{index}",
                )
                pipelines.append(task)
                self._wallet_tasks.add(task)
                task.add_done_callback(self._wallet_tasks.discard)
                await self._log(
                    f"Scheduled wallet {index + 1}/{plan.wallet_count}: "
                    f"{amount} SOL at +{offset / 1000:.1f}s"
                )
            results = await asyncio.gather(*pipelines, return_exceptions=True)
            funded = []
            for wallet, result in zip(destinations, results):
                if isinstance(result, BaseException):
                    LOGGER.error(
                        "Funding pipeline for %s crashed: %r", wallet.pubkey(), result
                    )
                    await self._log(f"Funding {wallet.pubkey()} failed: {result}")
                elif result:
                    funded.append(wallet)
            await self._emit(
                WalletsEvent(wallets=[list(bytes(wallet)) for wallet in funded])
            )
            await self._log(
                f"Funding complete: {len(funded)}/{plan.wallet_count} wallets funded"
            )
        except ConfigurationError as exc:
            await self._emit(ErrorEvent(error=str(exc)))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("Funding run failed")
            await self._emit(ErrorEvent(error=str(exc)))
        finally:
            if ledger is not None:
                await ledger.close()
            self._closed.set()

    async def _fund_wallet(
        self,
        ledger: LedgerClient,
        network: str,
        intermediate: Keypair,
        destination: Keypair,
        amount: Decimal,
        offset_ms: int,
    ) -> bool:
        await self._clock.sleep(offset_ms / 1000)
        destination_id = str(destination.pubkey())
        try:
            await self._fund_intermediate(ledger, network, intermediate, amount)
            signature = await ledger.transfer(intermediate, destination_id, amount)
            if not await ledger.confirm_transaction(signature):
                raise FundingError(destination_id, "forward transfer", "not confirmed")
        except (FundingError, NetworkError, ValueError) as exc:
            await self._log(f"Funding {destination_id} failed: {exc}")
            return False
        await self._log(f"Funded {destination_id} with {amount} SOL")
        return True

    async def _fund_intermediate(
        self,
        ledger: LedgerClient,
        network: str,
        intermediate: Keypair,
        amount: Decimal,
    ) -> None:
        intermediate_id = str(intermediate.pubkey())
        required = amount + TRANSFER_FEE_RESERVE
        if network in FAUCET_NETWORKS:
            signature = await ledger.request_faucet_grant(intermediate_id, required)
            if not await ledger.confirm_transaction(signature):
                raise FundingError(intermediate_id, "faucet grant", "not confirmed")
            return

        await self._emit(FundingRequestEvent(to=intermediate_id, amount=required))
        await self._log(
            f"Waiting for operator transfer of {required} SOL to {intermediate_id}"
        )
        deadline = self._clock.monotonic() + self.funding_timeout_sec
        while True:
            info = await ledger.get_account_info(intermediate_id)
            if info is not None and info.balance >= required:
                return
            if self._clock.monotonic() >= deadline:
                raise FundingError(
                    intermediate_id,
                    "operator transfer",
                    f"no deposit within {self.funding_timeout_sec}s",
                )
            await self._clock.sleep(self.balance_poll_sec)


def adopt_wallets(
    registry: BotRegistry,
    event: WalletsEvent,
    strategy: Optional[Strategy] = None,
    interval_ms: Optional[int] = None,
) -> list[str]:
    """Register the funded wallets carried by ``event``; return their bot ids."""
    bot_ids = []
    for secret in event.wallets:
        wallet = Keypair.from_bytes(bytes(secret))
        bot_ids.append(registry.add_bot(wallet, strategy, interval_ms))
    LOGGER.info("Adopted %s funded wallets into the registry", len(bot_ids))
    return bot_ids
