"""Per-wallet bot scheduler with isolated failures and bounded log buffers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from solders.keypair import Keypair

from engine.clock import Clock, SystemClock
from engine.errors import StrategyError
from strategies.base import Strategy, StrategyContext
from strategies.heartbeat import heartbeat_strategy

LOGGER = logging.getLogger("amm_fleet.engine.bot_registry")

LOG_CAPACITY = 100
DEFAULT_INTERVAL_MS = 5000


@dataclass(frozen=True)
class BotLogEntry:
    timestamp: int
    message: str
    level: str = "info"

    @property
    def is_error(self) -> bool:
        return self.level == "error"


@dataclass
class BotRecord:
    wallet: Keypair
    strategy: Strategy
    interval_ms: int
    is_running: bool = False
    logs: deque[BotLogEntry] = field(
        default_factory=lambda: deque(maxlen=LOG_CAPACITY)
    )
    task: asyncio.Task[None] | None = None
    stop_event: asyncio.Event | None = None

    @property
    def id(self) -> str:
        return str(self.wallet.pubkey())


class BotRegistry:
    """Registers wallets and runs one strategy loop per running bot.

    Every running bot owns one asyncio task. A tick invokes the strategy with
    ``(wallet, log, context)``; exceptions are logged on the bot and the loop
    keeps going. Ticks for one bot never overlap: the next tick waits for the
    previous one to settle. Stopping a bot prevents the next tick but lets an
    in-flight tick finish, so one late log line may still arrive.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        context: StrategyContext | None = None,
        default_strategy: Strategy = heartbeat_strategy,
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
    ) -> None:
        if default_interval_ms <= 0:
            raise ValueError("default_interval_ms must be positive")
        self._clock = clock or SystemClock()
        self.context = context
        self._default_strategy = default_strategy
        self._default_interval_ms = default_interval_ms
        self._bots: dict[str, BotRecord] = {}

    def add_bot(
        self,
        wallet: Keypair,
        strategy: Strategy | None = None,
        interval_ms: int | None = None,
    ) -> str:
        if interval_ms is not None and interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        bot_id = str(wallet.pubkey())
        if bot_id not in self._bots:
            self._bots[bot_id] = BotRecord(
                wallet=wallet,
                strategy=strategy or self._default_strategy,
                interval_ms=interval_ms or self._default_interval_ms,
            )
            LOGGER.info("Registered bot %s", bot_id)
        return bot_id

    def remove_bot(self, bot_id: str) -> None:
        bot = self._bots.pop(bot_id, None)
        if bot is None:
            return
        self._halt(bot)
        LOGGER.info("Removed bot %s", bot_id)

    def start_bot(
        self,
        bot_id: str,
        strategy: Strategy | None = None,
        interval_ms: int | None = None,
    ) -> None:
        bot = self._bots.get(bot_id)
        if bot is None or bot.is_running:
            return
        if strategy is not None:
            bot.strategy = strategy
        if interval_ms is not None:
            if interval_ms <= 0:
                raise ValueError("interval_ms must be positive")
            bot.interval_ms = interval_ms
        previous = bot.task if bot.task is not None and not bot.task.done() else None
        bot.is_running = True
        bot.stop_event = asyncio.Event()
        bot.task = asyncio.get_running_loop().create_task(
            self._run(bot, bot.stop_event, previous), name=f"bot-{bot_id}"
        )
        LOGGER.info("Started bot %s (interval_ms=%s)", bot_id, bot.interval_ms)

    def stop_bot(self, bot_id: str) -> None:
        bot = self._bots.get(bot_id)
        if bot is None or not bot.is_running:
            return
        self._halt(bot)
        LOGGER.info("Stopped bot %s", bot_id)

    def log(self, bot_id: str, message: str, level: str = "info") -> None:
        bot = self._bots.get(bot_id)
        if bot is None:
            return
        bot.logs.appendleft(
            BotLogEntry(timestamp=self._clock.now_ms(), message=message, level=level)
        )

    def get_logs(self, bot_id: str) -> list[BotLogEntry]:
        bot = self._bots.get(bot_id)
        return list(bot.logs) if bot is not None else []

    def is_running(self, bot_id: str) -> bool:
        bot = self._bots.get(bot_id)
        return bot.is_running if bot is not None else False

    def list_bots(self) -> list[str]:
        return list(self._bots)

    def get_wallet(self, bot_id: str) -> Keypair | None:
        bot = self._bots.get(bot_id)
        return bot.wallet if bot is not None else None

    def has_live_task(self, bot_id: str) -> bool:
        bot = self._bots.get(bot_id)
        return bot is not None and bot.task is not None and not bot.task.done()

    async def wait_stopped(self, bot_id: str) -> None:
        """Wait for a stopped bot's loop to drain its in-flight tick."""
        bot = self._bots.get(bot_id)
        if bot is None or bot.task is None:
            return
        await asyncio.gather(bot.task, return_exceptions=True)

    async def dispose(self) -> None:
        """Stop every bot, wait for their loops and forget them."""
        tasks = []
        for bot in self._bots.values():
            if bot.task is not None:
                tasks.append(bot.task)
            self._halt(bot)
        self._bots.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _halt(self, bot: BotRecord) -> None:
        bot.is_running = False
        if bot.stop_event is not None:
            bot.stop_event.set()
        bot.stop_event = None

    async def _run(
        self,
        bot: BotRecord,
        stop_event: asyncio.Event,
        previous: asyncio.Task[None] | None = None,
    ) -> None:
        bot_id = bot.id
        if previous is not None:
            # A restarted bot waits out the tick still in flight from its last run.
            await asyncio.gather(previous, return_exceptions=True)
        while not stop_event.is_set():
            started = self._clock.monotonic()
            await self._tick(bot_id, bot)
            elapsed = self._clock.monotonic() - started
            delay = max(0.0, bot.interval_ms / 1000 - elapsed)
            if await self._wait_or_stop(stop_event, delay):
                break
        if bot.task is asyncio.current_task():
            bot.task = None

    async def _tick(self, bot_id: str, bot: BotRecord) -> None:
        def log_fn(message: str) -> None:
            self.log(bot_id, message)

        try:
            result: Any = bot.strategy(bot.wallet, log_fn, self.context)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = StrategyError(bot_id, exc)
            LOGGER.warning("%s", error)
            self.log(bot_id, f"Error: {exc}", level="error")

    async def _wait_or_stop(self, stop_event: asyncio.Event, delay: float) -> bool:
        """Sleep on the clock; return True if a stop arrived first."""
        if stop_event.is_set():
            return True
        sleeper = asyncio.ensure_future(self._clock.sleep(delay))
        stopper = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait(
                {sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for pending in (sleeper, stopper):
                if not pending.done():
                    pending.cancel()
        return stop_event.is_set()
