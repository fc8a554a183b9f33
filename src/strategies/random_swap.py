"""Random volume strategy: one randomly sized buy or sell per tick."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from solders.keypair import Keypair

from strategies.base import LogFn, StrategyContext, execute_simulated_swap

_LAMPORT = Decimal("0.000000001")


@dataclass(frozen=True)
class RandomSwapConfig:
    min_sol: Decimal = Decimal("0.01")
    max_sol: Decimal = Decimal("0.05")
    buy_probability: Decimal = Decimal("0.5")

    def __post_init__(self) -> None:
        if self.min_sol <= 0 or self.max_sol < self.min_sol:
            raise ValueError("random_swap requires 0 < min_sol <= max_sol")
        if not (Decimal("0") <= self.buy_probability <= Decimal("1")):
            raise ValueError("buy_probability must be between 0 and 1")


class RandomSwapStrategy:
    def __init__(self, config: RandomSwapConfig) -> None:
        self.config = config

    def __call__(
        self, wallet: Keypair, log: LogFn, context: StrategyContext | None = None
    ) -> None:
        if context is None or context.pool_state is None:
            log("No pool available; skipping trade")
            return
        rng = context.rng
        size_sol = Decimal(
            str(rng.uniform(float(self.config.min_sol), float(self.config.max_sol)))
        ).quantize(_LAMPORT, rounding=ROUND_DOWN)
        if size_sol <= 0:
            return
        if Decimal(str(rng.random())) < self.config.buy_probability:
            execute_simulated_swap(context, "buy", size_sol, log)
            return
        price = context.pool_state.price
        if not price or price <= 0:
            log("Pool price unavailable; skipping sell")
            return
        execute_simulated_swap(context, "sell", size_sol / price, log)


def describe() -> str:
    return (
        "Random swap: each tick buys or sells a random SOL-sized amount "
        "within [min_sol, max_sol] against the simulated pool."
    )
