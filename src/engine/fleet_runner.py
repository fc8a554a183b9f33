"""Runner utilities for the bot fleet and for funding runs."""

from __future__ import annotations

import asyncio
import logging
import random
from decimal import Decimal
from pathlib import Path

from solders.keypair import Keypair

from amm.pool_state import AmmPoolState, PoolState
from engine.bot_registry import DEFAULT_INTERVAL_MS, BotLogEntry, BotRegistry
from engine.clock import Clock
from engine.funding_planner import FundingPlanner
from engine.funding_worker import (
    ErrorEvent,
    FundingCommand,
    FundingRequestEvent,
    FundingWorker,
    LogEvent,
    WalletsEvent,
)
from ledger_client.client import SolanaLedgerClient, build_ledger_client
from ledger_client.constants import DEFAULT_RPC_ENDPOINTS
from strategies import StrategyContext, build_strategy
from utils.credentials import DEFAULT_SERVICE_NAME, load_wallet_passphrase
from utils.rate_limiter import AsyncRateLimiter, RateLimitConfig
from utils.wallet_store import WalletStore

LOGGER = logging.getLogger("amm_fleet.engine.fleet_runner")

DEFAULT_WALLET_DIR = "~/.amm-fleet"
DEFAULT_FLEET_SIZE = 6


def resolve_rpc_endpoint(config: dict) -> str:
    endpoint = config.get("rpc_endpoint")
    if endpoint:
        return str(endpoint)
    return DEFAULT_RPC_ENDPOINTS[config.get("network", "devnet")]


def build_ledger_from_config(config: dict, rpc_endpoint: str) -> SolanaLedgerClient:
    rate_limiter = None
    if config.get("rpc_rate_limit"):
        rate_limiter = AsyncRateLimiter(
            RateLimitConfig(
                max_requests=int(config["rpc_rate_limit"]),
                time_window=float(config.get("rpc_rate_window_sec", 1.0)),
            )
        )
    return build_ledger_client(
        rpc_endpoint,
        timeout=float(config.get("rpc_timeout_sec", 15.0)),
        max_retries=int(config.get("rpc_retries", 3)),
        rate_limiter=rate_limiter,
    )


def build_wallet_store(config: dict) -> WalletStore:
    directory = Path(config.get("wallet_dir", DEFAULT_WALLET_DIR)).expanduser()
    passphrase = load_wallet_passphrase(DEFAULT_SERVICE_NAME, config)
    return WalletStore(directory, passphrase)


def build_pool_state(config: dict, clock: Clock | None = None) -> AmmPoolState:
    pool_config = config.get("pool")
    if not pool_config:
        return AmmPoolState(clock=clock)
    pool = PoolState(
        token_address=pool_config["token_address"],
        token_decimals=int(pool_config.get("token_decimals", 9)),
        reserve_sol=Decimal(str(pool_config["reserve_sol"])),
        reserve_token=Decimal(str(pool_config["reserve_token"])),
        pool_id=pool_config.get("pool_id"),
    )
    return AmmPoolState(pool, clock=clock)


def build_context(
    config: dict, pool_state: AmmPoolState, rng: random.Random | None = None
) -> StrategyContext:
    seed = config.get("seed")
    return StrategyContext(
        pool_state=pool_state,
        fee_bps=Decimal(str(config.get("fee_bps", 25))),
        slippage_percent=Decimal(str(config.get("slippage_percent", 1))),
        network=config.get("network", "devnet"),
        rng=rng or random.Random(seed),
        extra=dict(config.get("strategy_params") or {}),
    )


def load_fleet_wallets(config: dict) -> list[Keypair]:
    """Wallets from the encrypted store, or fresh ones for simulation runs."""
    source = config.get("wallets", "store")
    if source == "ephemeral":
        count = int(config.get("wallet_count", DEFAULT_FLEET_SIZE))
        LOGGER.info("Generating %s ephemeral wallets for simulation", count)
        return [Keypair() for _ in range(count)]
    store = build_wallet_store(config)
    wallets = store.load(config["network"])
    LOGGER.info("Loaded %s wallets for %s", len(wallets), config["network"])
    return wallets


async def run_fleet(
    config: dict,
    wallets: list[Keypair],
    *,
    clock: Clock | None = None,
    rng: random.Random | None = None,
) -> dict[str, list[BotLogEntry]]:
    """Run every wallet as a bot until ``run_seconds`` elapse or the task is cancelled.

    Returns each bot's log buffer (newest first) as it stood at shutdown.
    """
    pool_state = build_pool_state(config, clock)
    context = build_context(config, pool_state, rng)
    interval_ms = int(config.get("interval_ms", DEFAULT_INTERVAL_MS))
    registry = BotRegistry(clock=clock, context=context)
    strategy_name = config.get("strategy", "heartbeat")
    strategy_params = config.get("strategy_params") or {}

    for wallet in wallets:
        # Strategies may hold per-bot state.
        strategy = build_strategy(strategy_name, strategy_params)
        bot_id = registry.add_bot(wallet, strategy, interval_ms)
        registry.start_bot(bot_id)
    LOGGER.info(
        "Fleet running: %s bots, strategy=%s, interval_ms=%s",
        len(wallets),
        strategy_name,
        interval_ms,
    )

    logs: dict[str, list[BotLogEntry]] = {}
    try:
        run_seconds = config.get("run_seconds")
        if run_seconds is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(float(run_seconds))
    finally:
        for bot_id in registry.list_bots():
            logs[bot_id] = registry.get_logs(bot_id)
        await registry.dispose()
        pool = pool_state.get_pool()
        if pool is not None:
            LOGGER.info(
                "Fleet stopped. Pool price=%s volume=%s candles=%s",
                pool.price,
                pool.volume,
                len(pool.candles),
            )
        pool_state.dispose()
    return logs


async def run_funding(
    config: dict,
    *,
    worker: FundingWorker | None = None,
    store: WalletStore | None = None,
) -> list[Keypair]:
    """Execute one funding run, persisting the funded wallets when a store is given.

    Raises RuntimeError when the worker reports a run-level error.
    """
    rpc_endpoint = resolve_rpc_endpoint(config)
    command = FundingCommand(
        total_amount=Decimal(str(config["total_amount"])),
        duration_minutes=int(config["duration_minutes"]),
        network=config["network"],
        rpc_endpoint=rpc_endpoint,
        wallet_count=int(config.get("wallet_count", DEFAULT_FLEET_SIZE)),
    )
    if worker is None:
        planner = FundingPlanner(
            min_delay_sec=float(config.get("min_delay_sec", 5)),
            max_delay_sec=float(config.get("max_delay_sec", 35)),
        )
        worker = FundingWorker(
            lambda endpoint: build_ledger_from_config(config, endpoint),
            planner,
            funding_timeout_sec=float(config.get("funding_timeout_sec", 600)),
        )

    funded: list[Keypair] = []
    error: str | None = None
    worker.start(command)
    try:
        async for event in worker.events():
            if isinstance(event, LogEvent):
                LOGGER.info("%s", event.log)
            elif isinstance(event, FundingRequestEvent):
                LOGGER.warning(
                    "ACTION REQUIRED: transfer %s SOL to %s", event.amount, event.to
                )
            elif isinstance(event, WalletsEvent):
                funded = [Keypair.from_bytes(bytes(raw)) for raw in event.wallets]
            elif isinstance(event, ErrorEvent):
                error = event.error
    finally:
        await worker.terminate()

    if error is not None:
        raise RuntimeError(f"Funding run failed: {error}")
    if store is not None and funded:
        existing = store.load(command.network)
        store.save(command.network, existing + funded)
        LOGGER.info(
            "Saved %s funded wallets to %s", len(funded), store.path_for(command.network)
        )
    return funded
