"""Pool reserve values and orientation of raw on-chain vault amounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ledger_client.constants import NATIVE_MINT, SOL_DECIMALS

LOGGER = logging.getLogger("amm_fleet.amm.reserves")


@dataclass(frozen=True)
class PoolReserves:
    """UI-denominated reserves of a SOL/token pool."""

    reserve_sol: Decimal
    reserve_token: Decimal
    token_decimals: int
    sol_decimals: int = SOL_DECIMALS

    @property
    def price(self) -> Decimal:
        """SOL per token, zero for an empty token side."""
        if self.reserve_token == 0:
            return Decimal("0")
        return self.reserve_sol / self.reserve_token


def to_ui_amount(raw_amount: int | str, decimals: int) -> Decimal:
    return Decimal(str(raw_amount)).scaleb(-decimals)


def orient_reserves(
    base_reserve_raw: int | str,
    quote_reserve_raw: int | str,
    mint_a: str,
    mint_a_decimals: int,
    mint_b: str,
    mint_b_decimals: int,
) -> PoolReserves | None:
    """Map a pool's raw base/quote vault amounts onto SOL and token sides.

    Mint A holds the base reserve and mint B the quote reserve. Returns None
    when neither mint is native SOL.
    """
    if mint_a == NATIVE_MINT:
        return PoolReserves(
            reserve_sol=to_ui_amount(base_reserve_raw, mint_a_decimals),
            reserve_token=to_ui_amount(quote_reserve_raw, mint_b_decimals),
            token_decimals=mint_b_decimals,
            sol_decimals=mint_a_decimals,
        )
    if mint_b == NATIVE_MINT:
        return PoolReserves(
            reserve_sol=to_ui_amount(quote_reserve_raw, mint_b_decimals),
            reserve_token=to_ui_amount(base_reserve_raw, mint_a_decimals),
            token_decimals=mint_a_decimals,
            sol_decimals=mint_b_decimals,
        )
    LOGGER.error(
        "Native SOL not found in pool mints (%s, %s); cannot orient reserves.",
        mint_a,
        mint_b,
    )
    return None
