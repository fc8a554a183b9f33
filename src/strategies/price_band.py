"""Mean-reversion band strategy around a reference pool price."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from solders.keypair import Keypair

from strategies.base import LogFn, StrategyContext, execute_simulated_swap


@dataclass(frozen=True)
class PriceBandConfig:
    band_percent: Decimal = Decimal("5")
    trade_sol: Decimal = Decimal("0.02")
    reference_price: Decimal | None = None

    def __post_init__(self) -> None:
        if not (Decimal("0") < self.band_percent < Decimal("100")):
            raise ValueError("band_percent must be between 0 and 100")
        if self.trade_sol <= 0:
            raise ValueError("trade_sol must be positive")
        if self.reference_price is not None and self.reference_price <= 0:
            raise ValueError("reference_price must be positive")


class PriceBandStrategy:
    """Buy below ``reference * (1 - band)``, sell above ``reference * (1 + band)``.

    Without a configured reference, the pool price seen on the first tick is used.
    """

    def __init__(self, config: PriceBandConfig) -> None:
        self.config = config
        self.reference_price = config.reference_price

    def __call__(
        self, wallet: Keypair, log: LogFn, context: StrategyContext | None = None
    ) -> None:
        if context is None or context.pool_state is None:
            log("No pool available; skipping trade")
            return
        price = context.pool_state.price
        if not price or price <= 0:
            log("Pool price unavailable; holding")
            return
        if self.reference_price is None:
            self.reference_price = price
            log(f"Reference price set to {price:.12f}")
            return

        band = self.config.band_percent / Decimal("100")
        lower = self.reference_price * (Decimal("1") - band)
        upper = self.reference_price * (Decimal("1") + band)
        if price < lower:
            execute_simulated_swap(context, "buy", self.config.trade_sol, log)
        elif price > upper:
            execute_simulated_swap(context, "sell", self.config.trade_sol / price, log)
        else:
            log(f"Price {price:.12f} inside band; holding")


def describe() -> str:
    return (
        "Price band: buys when the pool price falls below the band around a "
        "reference price and sells when it rises above it."
    )
