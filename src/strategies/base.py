"""Strategy contract and the simulated swap helper shared by strategies."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional, Union

from solders.keypair import Keypair

from amm.quote import DEFAULT_FEE_BPS, SwapQuote, quote

if TYPE_CHECKING:
    from amm.pool_state import AmmPoolState

LOGGER = logging.getLogger("amm_fleet.strategy")

LogFn = Callable[[str], None]
Strategy = Callable[
    [Keypair, LogFn, Optional["StrategyContext"]], Union[None, Awaitable[None]]
]


@dataclass
class StrategyContext:
    pool_state: AmmPoolState | None = None
    fee_bps: Decimal = Decimal(DEFAULT_FEE_BPS)
    slippage_percent: Decimal = Decimal("1")
    network: str = "devnet"
    rng: random.Random = field(default_factory=random.Random)
    extra: Mapping[str, Any] = field(default_factory=dict)


def execute_simulated_swap(
    context: StrategyContext | None,
    side: str,
    amount: Decimal,
    log: LogFn,
) -> SwapQuote | None:
    """Quote and apply one swap against the context pool.

    ``side`` is ``"buy"`` (spend ``amount`` SOL for tokens) or ``"sell"``
    (spend ``amount`` tokens for SOL). Returns the applied quote, or None when
    nothing was traded.
    """
    if context is None or context.pool_state is None:
        log("No pool available; skipping trade")
        return None
    reserves = context.pool_state.reserves()
    if reserves is None:
        log("No pool available; skipping trade")
        return None
    is_buy = side == "buy"
    swap = quote(
        amount,
        is_buy,
        reserves,
        context.fee_bps,
        context.slippage_percent,
    )
    if swap is None or swap.is_degenerate:
        log(f"Pool cannot fill {side} of {amount}; skipping trade")
        return None
    if is_buy:
        context.pool_state.update_after_trade(-swap.estimated_output, amount)
        log(
            f"Bought {swap.estimated_output:.6f} tokens for {amount} SOL "
            f"(impact {swap.price_impact_percent:.2f}%)"
        )
    else:
        context.pool_state.update_after_trade(amount, -swap.estimated_output)
        log(
            f"Sold {amount:.6f} tokens for {swap.estimated_output:.9f} SOL "
            f"(impact {swap.price_impact_percent:.2f}%)"
        )
    LOGGER.debug("Applied %s of %s against simulated pool", side, amount)
    return swap
