"""Default strategy: proves the bot loop is alive without trading."""

from __future__ import annotations

from solders.keypair import Keypair

from strategies.base import LogFn, StrategyContext


def heartbeat_strategy(
    wallet: Keypair, log: LogFn, context: StrategyContext | None = None
) -> None:
    log("executing default strategy")


def describe() -> str:
    return "Heartbeat: logs one line per tick and never trades."
